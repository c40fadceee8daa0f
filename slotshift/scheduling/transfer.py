"""Slot-to-slot appointment transfer validation and planning."""

import logging
import re
from datetime import date, tzinfo
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from slotshift.scheduling.calendar import local_date
from slotshift.scheduling.errors import (
    NoOpTransferError,
    SourceNotMovableError,
    TargetOccupiedError,
    UnknownScheduleError,
    UnknownSlotError,
    UnresolvedAppointmentError,
)
from slotshift.scheduling.models import (
    Schedule,
    Slot,
    SlotAppointment,
    SlotRef,
    TransferRequest,
)

logger = logging.getLogger(__name__)

# Legacy convention: "ID: 123", "Appointment ID: 123", "App ID: 123".
_COMMENT_ID_PATTERN = re.compile(
    r"(appointment\s*id|app\s*id|id)\s*:\s*([a-zA-Z0-9\-_]+)", re.IGNORECASE
)
_UUID_PATTERN = re.compile(
    r"([a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})", re.IGNORECASE
)


class AppointmentIdSource(str, Enum):
    """Where a transfer's appointment id came from, most to least reliable."""

    EXPLICIT = "explicit"
    APPOINTMENTS = "appointments"
    COMMENT_PATTERN = "comment_pattern"
    COMMENT_UUID = "comment_uuid"
    SLOT_ID = "slot_id"


class AppointmentIdResolution(BaseModel):
    appointment_id: str
    source: AppointmentIdSource

    @property
    def degraded(self) -> bool:
        return self.source == AppointmentIdSource.SLOT_ID


def resolve_appointment_id(slot: Slot) -> AppointmentIdResolution:
    """Find the appointment carried by *slot*.

    Priority: linked appointment record, ``id: <value>`` comment pattern,
    UUID in the comment, then the slot id itself (degraded).
    """
    if slot.appointments:
        return AppointmentIdResolution(
            appointment_id=slot.appointments[0].id,
            source=AppointmentIdSource.APPOINTMENTS,
        )
    if slot.comment:
        match = _COMMENT_ID_PATTERN.search(slot.comment)
        if match:
            return AppointmentIdResolution(
                appointment_id=match.group(2),
                source=AppointmentIdSource.COMMENT_PATTERN,
            )
        match = _UUID_PATTERN.search(slot.comment)
        if match:
            return AppointmentIdResolution(
                appointment_id=match.group(1),
                source=AppointmentIdSource.COMMENT_UUID,
            )
    return AppointmentIdResolution(appointment_id=slot.id, source=AppointmentIdSource.SLOT_ID)


class TransferPlan(BaseModel):
    """Accepted transfer: the effects to apply to both slots."""

    source: SlotRef
    target: SlotRef
    appointment_id: str
    resolution: AppointmentIdSource
    source_slot: Slot
    target_slot: Slot
    source_date: date
    target_date: date
    source_practitioner_name: Optional[str] = None
    target_practitioner_name: Optional[str] = None
    cross_practitioner: bool = False
    same_day: bool = True

    @property
    def degraded(self) -> bool:
        return self.resolution == AppointmentIdSource.SLOT_ID

    @property
    def schedule_ids(self) -> list[str]:
        return list(dict.fromkeys([self.source.schedule_id, self.target.schedule_id]))

    def release(self, slot: Slot) -> Slot:
        """*slot* (the source) once the appointment has left it."""
        return slot.model_copy(update={"overbooked": False, "appointments": [], "comment": None})

    def occupy(self, slot: Slot) -> Slot:
        """*slot* (the target) once the appointment has arrived."""
        appointments = list(self.source_slot.appointments)
        if not appointments or appointments[0].id != self.appointment_id:
            appointments = [SlotAppointment(id=self.appointment_id)]
        return slot.model_copy(
            update={
                "overbooked": True,
                "appointments": appointments,
                "comment": self.source_slot.comment or slot.comment,
            }
        )

    def summary(self) -> str:
        """Confirmation message for the transfer."""
        src_time = self.source_slot.start.strftime("%H:%M")
        tgt_time = self.target_slot.start.strftime("%H:%M")
        src_day = self.source_date.strftime("%b %d, %Y")
        tgt_day = self.target_date.strftime("%b %d, %Y")
        if self.cross_practitioner and self.source_practitioner_name and self.target_practitioner_name:
            return (
                f"Appointment transferred from Dr. {self.source_practitioner_name} "
                f"({src_day} {src_time}) to Dr. {self.target_practitioner_name} "
                f"({tgt_day} {tgt_time})"
            )
        if self.same_day:
            return f"Appointment moved from {src_time} to {tgt_time} on {src_day}"
        return (
            f"Appointment transferred from {src_day} ({src_time}) "
            f"to {tgt_day} ({tgt_time})"
        )


def validate_transfer(
    source: Slot,
    target: Slot,
    *,
    source_schedule: Optional[Schedule] = None,
    target_schedule: Optional[Schedule] = None,
    source_practitioner_name: Optional[str] = None,
    target_practitioner_name: Optional[str] = None,
    appointment_id: Optional[str] = None,
    block_degraded: bool = False,
    tz: Optional[tzinfo] = None,
) -> TransferPlan:
    """Decide whether the appointment in *source* may move to *target*.

    Args:
        source: Occupied slot being dragged
        target: Free slot it is dropped on
        source_schedule: Schedule owning *source* (dates, practitioner)
        target_schedule: Schedule owning *target*
        source_practitioner_name: Display name for confirmation messages
        target_practitioner_name: Display name for confirmation messages
        appointment_id: Appointment id already known to the caller
        block_degraded: Reject instead of falling back to the slot id
        tz: Practitioner timezone used to compare the two dates

    Returns:
        TransferPlan describing the accepted move

    Raises:
        NoOpTransferError, TargetOccupiedError, SourceNotMovableError,
        UnresolvedAppointmentError
    """
    source_schedule_id = source_schedule.id if source_schedule else source.schedule_id
    target_schedule_id = target_schedule.id if target_schedule else target.schedule_id
    if source_schedule_id and target_schedule_id:
        same_slot = (source_schedule_id, source.id) == (target_schedule_id, target.id)
    else:
        same_slot = source.id == target.id
    if same_slot:
        raise NoOpTransferError(f"Slot {source.id} dropped on itself")
    if target.overbooked:
        raise TargetOccupiedError()
    if not source.overbooked:
        raise SourceNotMovableError(f"Slot {source.id} is free and has no appointment to move")

    if appointment_id:
        resolution = AppointmentIdResolution(
            appointment_id=appointment_id, source=AppointmentIdSource.EXPLICIT
        )
    else:
        resolution = resolve_appointment_id(source)

    if resolution.degraded:
        if block_degraded:
            raise UnresolvedAppointmentError(
                f"No appointment link found on slot {source.id}"
            )
        logger.warning(
            f"Transfer from slot {source.id}: no appointment link found, "
            "falling back to slot id"
        )

    source_pid = source_schedule.practitioner_id if source_schedule else None
    target_pid = target_schedule.practitioner_id if target_schedule else None
    if source_pid and target_pid:
        cross = source_pid != target_pid
    else:
        cross = bool(
            source_practitioner_name
            and target_practitioner_name
            and source_practitioner_name != target_practitioner_name
        )

    source_date = local_date(source_schedule.planning_start if source_schedule else source.start, tz)
    target_date = local_date(target_schedule.planning_start if target_schedule else target.start, tz)

    return TransferPlan(
        source=SlotRef(
            practitioner_id=source_pid,
            schedule_id=source_schedule_id or "",
            slot_id=source.id,
        ),
        target=SlotRef(
            practitioner_id=target_pid,
            schedule_id=target_schedule_id or "",
            slot_id=target.id,
        ),
        appointment_id=resolution.appointment_id,
        resolution=resolution.source,
        source_slot=source,
        target_slot=target,
        source_date=source_date,
        target_date=target_date,
        source_practitioner_name=source_practitioner_name,
        target_practitioner_name=target_practitioner_name,
        cross_practitioner=cross,
        same_day=source_date == target_date,
    )


def validate_transfer_request(
    request: TransferRequest,
    *,
    block_degraded: bool = False,
    tz: Optional[tzinfo] = None,
    **names: Optional[str],
) -> TransferPlan:
    """Validate a ``TransferRequest`` collected by the UI."""
    return validate_transfer(
        request.source_slot,
        request.target_slot,
        source_schedule=request.source_schedule,
        target_schedule=request.target_schedule,
        appointment_id=request.appointment_id,
        block_degraded=block_degraded,
        tz=tz,
        **names,
    )


def locate_slot(schedules: list[Schedule], ref: SlotRef) -> tuple[Schedule, Slot]:
    """Find the schedule and slot a ``SlotRef`` points at.

    Raises:
        UnknownScheduleError: no schedule with ``ref.schedule_id``
        UnknownSlotError: the schedule has no slot ``ref.slot_id``
    """
    schedule = next((s for s in schedules if s.id == ref.schedule_id), None)
    if schedule is None:
        raise UnknownScheduleError(f"Unknown schedule: {ref.schedule_id}")
    slot = schedule.find_slot(ref.slot_id)
    if slot is None:
        raise UnknownSlotError(f"Slot {ref.slot_id} not found in schedule {ref.schedule_id}")
    return schedule, slot


def plan_transfer(
    schedules: list[Schedule],
    source: SlotRef,
    target: SlotRef,
    *,
    practitioner_names: Optional[dict[str, str]] = None,
    appointment_id: Optional[str] = None,
    block_degraded: bool = False,
    tz: Optional[tzinfo] = None,
) -> TransferPlan:
    """Resolve two slot references and validate the move between them.

    *practitioner_names* maps practitioner ids to display names used in the
    confirmation message.
    """
    source_schedule, source_slot = locate_slot(schedules, source)
    target_schedule, target_slot = locate_slot(schedules, target)
    names = practitioner_names or {}
    return validate_transfer(
        source_slot,
        target_slot,
        source_schedule=source_schedule,
        target_schedule=target_schedule,
        source_practitioner_name=names.get(source_schedule.practitioner_id or ""),
        target_practitioner_name=names.get(target_schedule.practitioner_id or ""),
        appointment_id=appointment_id,
        block_degraded=block_degraded,
        tz=tz,
    )


def apply_transfer(
    schedules: list[Schedule], plan: TransferPlan, strict: bool = True
) -> list[Schedule]:
    """Return *schedules* with the plan's occupancy flip applied.

    The flip is applied to the slots as they currently appear in
    *schedules*, so timing changes made since validation are kept. With
    ``strict=False`` only the side(s) present are rewritten, so a
    cross-practitioner plan can be applied to each practitioner's schedule
    set separately.
    """
    source_key = (plan.source.schedule_id, plan.source.slot_id)
    target_key = (plan.target.schedule_id, plan.target.slot_id)
    found: set[tuple[str, str]] = set()
    result: list[Schedule] = []
    for schedule in schedules:
        slots = []
        touched = False
        for slot in schedule.slots:
            key = (schedule.id, slot.id)
            if key == source_key:
                slot = plan.release(slot)
            elif key == target_key:
                slot = plan.occupy(slot)
            else:
                slots.append(slot)
                continue
            slots.append(slot)
            found.add(key)
            touched = True
        result.append(schedule.model_copy(update={"slots": slots}) if touched else schedule)

    if strict:
        missing = {source_key, target_key} - found
        if missing:
            raise UnknownSlotError(f"Slots not found in schedules: {sorted(missing)}")
    return result
