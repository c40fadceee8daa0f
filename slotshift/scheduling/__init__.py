"""Slot transfer, schedule shift, deletion planning and reconciliation."""

from slotshift.scheduling.calendar import (
    group_by_date,
    local_date,
    slots_on_date,
    total_available,
    total_occupied,
)
from slotshift.scheduling.deletion import (
    ScheduleDeletionPlan,
    SlotDeletionPlan,
    apply_deletion,
    plan_deletion,
    plan_schedule_deletion,
    plan_slot_deletion,
)
from slotshift.scheduling.errors import (
    InvalidDragKeyError,
    InvalidMagnitudeError,
    MissingActorError,
    MissingReasonError,
    NoOpTransferError,
    ReconciliationInProgressError,
    SchedulingError,
    ShiftRejected,
    SourceNotMovableError,
    StaleCacheError,
    TargetOccupiedError,
    TransferRejected,
    UnknownScheduleError,
    UnknownSlotError,
    UnresolvedAppointmentError,
)
from slotshift.scheduling.keys import decode_drag_key, encode_drag_key
from slotshift.scheduling.models import (
    DateRange,
    DeletionRequest,
    DeletionScope,
    Schedule,
    ShiftMode,
    ShiftRequest,
    Slot,
    SlotAppointment,
    SlotRef,
    TimeWindow,
    TransferRequest,
)
from slotshift.scheduling.reconciliation import (
    ReconciliationHandle,
    ReconciliationStatus,
    Reconciler,
    ScheduleCache,
)
from slotshift.scheduling.shift import ShiftPlan, apply_shift, plan_shift, shift_by_days, shift_by_minutes
from slotshift.scheduling.transfer import (
    AppointmentIdSource,
    TransferPlan,
    apply_transfer,
    locate_slot,
    plan_transfer,
    resolve_appointment_id,
    validate_transfer,
    validate_transfer_request,
)

__all__ = [
    "AppointmentIdSource",
    "DateRange",
    "DeletionRequest",
    "DeletionScope",
    "InvalidDragKeyError",
    "InvalidMagnitudeError",
    "MissingActorError",
    "MissingReasonError",
    "NoOpTransferError",
    "ReconciliationHandle",
    "ReconciliationInProgressError",
    "ReconciliationStatus",
    "Reconciler",
    "Schedule",
    "ScheduleCache",
    "ScheduleDeletionPlan",
    "SchedulingError",
    "ShiftMode",
    "ShiftPlan",
    "ShiftRejected",
    "ShiftRequest",
    "Slot",
    "SlotAppointment",
    "SlotDeletionPlan",
    "SlotRef",
    "SourceNotMovableError",
    "StaleCacheError",
    "TargetOccupiedError",
    "TimeWindow",
    "TransferPlan",
    "TransferRejected",
    "TransferRequest",
    "UnknownScheduleError",
    "UnknownSlotError",
    "UnresolvedAppointmentError",
    "apply_deletion",
    "apply_shift",
    "apply_transfer",
    "decode_drag_key",
    "encode_drag_key",
    "group_by_date",
    "local_date",
    "locate_slot",
    "plan_deletion",
    "plan_schedule_deletion",
    "plan_shift",
    "plan_slot_deletion",
    "plan_transfer",
    "resolve_appointment_id",
    "shift_by_days",
    "shift_by_minutes",
    "slots_on_date",
    "total_available",
    "total_occupied",
    "validate_transfer",
    "validate_transfer_request",
]
