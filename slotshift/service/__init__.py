"""Schedule service collaborators."""

from slotshift.service.base import (
    CommitError,
    ScheduleService,
    ServiceConnectionError,
    ServiceError,
)
from slotshift.service.http import HttpScheduleService, parse_schedules

__all__ = [
    "CommitError",
    "HttpScheduleService",
    "ScheduleService",
    "ServiceConnectionError",
    "ServiceError",
    "parse_schedules",
]
