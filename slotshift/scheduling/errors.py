"""Error taxonomy for slot transfer, shift and reconciliation."""

from typing import Optional


class SchedulingError(Exception):
    """Base exception for scheduling errors.

    Every subclass carries a stable ``code`` so callers (UI, API) can map the
    failure to a message without parsing text.
    """

    code = "SchedulingError"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)
        self.message = message or self.code


# Transfer validation


class TransferRejected(SchedulingError):
    """A proposed slot-to-slot transfer is not legal."""

    code = "TransferRejected"


class NoOpTransferError(TransferRejected):
    """Source and target are the same slot."""

    code = "NoOpTransfer"


class TargetOccupiedError(TransferRejected):
    """Target slot already holds an appointment."""

    code = "TargetOccupied"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Cannot drop on an occupied slot")


class SourceNotMovableError(TransferRejected):
    """Source slot is free, so there is no appointment to move."""

    code = "SourceNotMovable"


class UnresolvedAppointmentError(TransferRejected):
    """Appointment link could only be guessed from the slot id."""

    code = "UnresolvedAppointment"


# Shift validation


class ShiftRejected(SchedulingError):
    """A proposed time or day shift is not legal."""

    code = "ShiftRejected"


class InvalidMagnitudeError(ShiftRejected):
    code = "InvalidMagnitude"


class MissingReasonError(ShiftRejected):
    code = "MissingReason"


class MissingActorError(ShiftRejected):
    code = "MissingActor"


# Lookup


class UnknownScheduleError(SchedulingError):
    code = "UnknownSchedule"


class UnknownSlotError(SchedulingError):
    code = "UnknownSlot"


class InvalidDragKeyError(SchedulingError):
    code = "InvalidDragKey"


# Cache / reconciliation


class StaleCacheError(SchedulingError):
    """Cached schedules have not been refreshed since a failed or unconfirmed action."""

    code = "StaleCache"


class ReconciliationInProgressError(SchedulingError):
    """Another reconciliation is still pending for the same practitioner."""

    code = "ReconciliationInProgress"
