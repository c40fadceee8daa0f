"""Observability logger for reconciliation telemetry and the audit trail."""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from slotshift.observability.events import (
    CacheRefreshEvent,
    EventType,
    ObservabilityEvent,
    ReconciliationEvent,
    TransferAuditEvent,
)

logger = logging.getLogger(__name__)


class ObservabilityLogger:
    """Central logger for reconciliation events.

    Writes structured events to JSON Lines files for later analysis and
    notifies registered callbacks.
    """

    _instance: Optional["ObservabilityLogger"] = None

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = True,
    ):
        """Initialize observability logger.

        Args:
            log_dir: Directory for log files (default: data/logs)
            enabled: Whether logging is enabled
        """
        self.enabled = enabled

        if log_dir is None:
            log_dir = Path("data/logs")
        self.log_dir = log_dir
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._log_files: dict[str, Path] = {
            "reconciliation": self.log_dir / "reconciliation.jsonl",
            "cache": self.log_dir / "cache_refresh.jsonl",
            "audit": self.log_dir / "transfer_audit.jsonl",
        }

        self._callbacks: list[Callable[[ObservabilityEvent], None]] = []

    @classmethod
    def get_instance(cls) -> "ObservabilityLogger":
        """Get or create singleton instance from settings."""
        if cls._instance is None:
            from slotshift.config import get_settings

            settings = get_settings()
            cls._instance = cls(
                log_dir=settings.observability_log_dir,
                enabled=settings.observability_enabled,
            )
        return cls._instance

    def generate_request_id(self) -> str:
        """Generate a unique request ID."""
        return str(uuid.uuid4())[:8]

    def add_callback(self, callback: Callable[[ObservabilityEvent], None]) -> None:
        """Add callback for real-time event monitoring."""
        self._callbacks.append(callback)

    def _write_event(self, event: ObservabilityEvent, log_type: str) -> None:
        """Write event to appropriate log file."""
        if not self.enabled:
            return

        try:
            log_file = self._log_files.get(log_type)
            if log_file:
                with open(log_file, "a") as f:
                    f.write(event.model_dump_json() + "\n")

            for callback in self._callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Observability callback failed: {e}")

        except OSError as e:
            logger.warning(f"Failed to write observability event: {e}")

    # Reconciliation logging

    @contextmanager
    def reconciliation(
        self,
        action: str,
        practitioner_ids: list[str],
        schedule_ids: Optional[list[str]] = None,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        """Context manager wrapping one external commit.

        Usage:
            with obs.reconciliation("shift", ["p1"], reason=..., actor_id=...) as event:
                await service.commit_minute_shift(...)
        """
        start_time = time.time()
        event = ReconciliationEvent(
            event_type=EventType.RECONCILIATION_PENDING,
            action=action,
            practitioner_ids=practitioner_ids,
            schedule_ids=schedule_ids or [],
            reason=reason,
            actor_id=actor_id,
            request_id=request_id or self.generate_request_id(),
        )

        try:
            yield event
            event.event_type = EventType.RECONCILIATION_COMMITTED

        except Exception as e:
            event.event_type = EventType.RECONCILIATION_FAILED
            event.error_type = type(e).__name__
            event.error_message = str(e)[:200]
            raise

        finally:
            event.duration_ms = (time.time() - start_time) * 1000
            self._write_event(event, "reconciliation")

    def log_cache_refresh(
        self,
        practitioner_id: str,
        schedule_count: int = 0,
        error: Optional[Exception] = None,
        request_id: Optional[str] = None,
    ) -> None:
        """Log a post-commit re-fetch."""
        event = CacheRefreshEvent(
            event_type=EventType.CACHE_REFRESH_FAILED if error else EventType.CACHE_REFRESHED,
            practitioner_id=practitioner_id,
            schedule_count=schedule_count,
            error_type=type(error).__name__ if error else None,
            error_message=str(error)[:200] if error else None,
            request_id=request_id,
        )
        self._write_event(event, "cache")

    def log_degraded_transfer(
        self,
        appointment_id: str,
        resolution: str,
        source_slot_id: str,
        target_slot_id: str,
        request_id: Optional[str] = None,
    ) -> None:
        """Log a transfer whose appointment id fell back to a weak source."""
        event = TransferAuditEvent(
            appointment_id=appointment_id,
            resolution=resolution,
            source_slot_id=source_slot_id,
            target_slot_id=target_slot_id,
            request_id=request_id,
        )
        self._write_event(event, "audit")

    # Utility methods

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Read recent events from a log file."""
        log_file = self._log_files.get(log_type)
        if not log_file or not log_file.exists():
            return []

        events = []
        with open(log_file) as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        return events[-limit:]

    def get_stats(self, log_type: str) -> dict[str, Any]:
        """Get basic statistics for a log type."""
        events = self.get_recent_events(log_type, limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        errors = sum(1 for e in events if "failed" in e.get("event_type", ""))
        avg_duration = sum(e.get("duration_ms") or 0 for e in events) / total

        return {
            "total": total,
            "errors": errors,
            "error_rate": errors / total if total > 0 else 0,
            "avg_duration_ms": avg_duration,
        }


def get_observability_logger() -> ObservabilityLogger:
    """Get the global observability logger instance."""
    return ObservabilityLogger.get_instance()
