"""Abstract schedule service: the system of record for schedules and slots."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from slotshift.scheduling.models import Schedule


class ServiceError(Exception):
    """Base exception for schedule service errors."""

    pass


class ServiceConnectionError(ServiceError):
    """Connection to the schedule service failed or timed out."""

    pass


class CommitError(ServiceError):
    """The service rejected a transfer, shift or deletion."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ScheduleService(ABC):
    """Persistence collaborator used by the reconciler.

    Implementations raise ``ServiceError`` (``CommitError`` for commands)
    on failure and return nothing on success.
    """

    @abstractmethod
    async def fetch_schedules(self, practitioner_id: str) -> list[Schedule]:
        """Authoritative schedules for one practitioner."""

    @abstractmethod
    async def commit_transfer(
        self,
        appointment_id: str,
        new_slot_id: str,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> None:
        """Move an appointment to a new slot."""

    @abstractmethod
    async def commit_minute_shift(
        self, schedule_id: str, minutes: int, reason: str, actor_id: str
    ) -> None:
        """Delay every slot of a schedule by *minutes*."""

    @abstractmethod
    async def commit_day_shift(
        self, schedule_id: str, days: int, reason: str, actor_id: str
    ) -> None:
        """Move a schedule forward by *days*."""

    @abstractmethod
    async def commit_schedule_deletion(self, schedule_ids: list[str]) -> None:
        """Delete schedules and their slots."""

    @abstractmethod
    async def commit_slot_deletion(self, slot_ids: list[str]) -> None:
        """Delete individual slots."""

    async def close(self) -> None:
        """Release any held resources."""
        return None
