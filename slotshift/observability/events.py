"""Structured audit events for schedule reconciliation."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of observability events."""

    RECONCILIATION_PENDING = "reconciliation_pending"
    RECONCILIATION_COMMITTED = "reconciliation_committed"
    RECONCILIATION_FAILED = "reconciliation_failed"
    CACHE_REFRESHED = "cache_refreshed"
    CACHE_REFRESH_FAILED = "cache_refresh_failed"
    TRANSFER_DEGRADED = "transfer_degraded"


class ObservabilityEvent(BaseModel):
    """Base class for all observability events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ReconciliationEvent(ObservabilityEvent):
    """One optimistic action and its commit outcome."""

    action: str  # transfer, time_shift, day_shift, schedule_deletion, slot_deletion
    practitioner_ids: list[str] = Field(default_factory=list)
    schedule_ids: list[str] = Field(default_factory=list)

    # Audit trail
    reason: Optional[str] = None
    actor_id: Optional[str] = None

    # Error fields (populated on failure)
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class CacheRefreshEvent(ObservabilityEvent):
    """Re-fetch of a practitioner's schedules after a commit."""

    practitioner_id: str
    schedule_count: int = 0
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class TransferAuditEvent(ObservabilityEvent):
    """Transfer whose appointment link could not be confirmed."""

    event_type: EventType = EventType.TRANSFER_DEGRADED
    appointment_id: str
    resolution: str
    source_slot_id: str
    target_slot_id: str
