"""Observability module for reconciliation telemetry and audit."""

from slotshift.observability.events import (
    CacheRefreshEvent,
    EventType,
    ObservabilityEvent,
    ReconciliationEvent,
    TransferAuditEvent,
)
from slotshift.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "CacheRefreshEvent",
    "EventType",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "ReconciliationEvent",
    "TransferAuditEvent",
    "get_observability_logger",
]
