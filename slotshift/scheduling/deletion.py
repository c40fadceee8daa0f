"""Bulk deletion planning for schedules and slots."""

from datetime import datetime, tzinfo
from typing import Optional, Union

from pydantic import BaseModel

from slotshift.scheduling.calendar import local_date
from slotshift.scheduling.errors import UnknownScheduleError
from slotshift.scheduling.models import (
    DateRange,
    DeletionRequest,
    DeletionScope,
    Schedule,
    Slot,
    TimeWindow,
)


class ScheduleDeletionPlan(BaseModel):
    """Schedules selected for deletion and the data that goes with them."""

    to_delete: list[Schedule]
    schedule_count: int
    slot_count: int
    occupied_count: int

    @property
    def schedule_ids(self) -> list[str]:
        return [s.id for s in self.to_delete]

    def warning(self) -> str:
        message = (
            f"{self.schedule_count} schedule(s) with a total of "
            f"{self.slot_count} slot(s) will be deleted"
        )
        if self.occupied_count:
            message += f"; {self.occupied_count} slot(s) hold appointments"
        return message


class SlotDeletionPlan(BaseModel):
    """Slots of one schedule selected for deletion."""

    schedule_id: str
    practitioner_id: Optional[str] = None
    slots: list[Slot]
    slot_count: int
    occupied_count: int

    @property
    def slot_ids(self) -> list[str]:
        return [s.id for s in self.slots]

    def warning(self) -> str:
        message = f"{self.slot_count} slot(s) will be deleted"
        if self.occupied_count:
            message += f"; {self.occupied_count} slot(s) hold appointments"
        return message


DeletionPlan = Union[ScheduleDeletionPlan, SlotDeletionPlan]


def plan_schedule_deletion(
    schedules: list[Schedule],
    selection: Union[list[str], DateRange],
    tz: Optional[tzinfo] = None,
) -> ScheduleDeletionPlan:
    """Select schedules by id, or by ``planning_start`` date within an inclusive range."""
    if isinstance(selection, DateRange):
        chosen = [s for s in schedules if selection.contains(local_date(s.planning_start, tz))]
    else:
        wanted = set(selection)
        chosen = [s for s in schedules if s.id in wanted]

    return ScheduleDeletionPlan(
        to_delete=chosen,
        schedule_count=len(chosen),
        slot_count=sum(len(s.slots) for s in chosen),
        occupied_count=sum(1 for s in chosen for slot in s.slots if slot.overbooked),
    )


def plan_slot_deletion(
    schedule: Schedule,
    selection: Union[list[str], TimeWindow],
    tz: Optional[tzinfo] = None,
) -> SlotDeletionPlan:
    """Select slots of *schedule* by id, or whose start lies in a time window on its date."""
    if isinstance(selection, TimeWindow):
        day = local_date(schedule.planning_start, tz)
        zone = tz or schedule.planning_start.tzinfo
        window_start = datetime.combine(day, selection.start_time, tzinfo=zone)
        window_end = datetime.combine(day, selection.end_time, tzinfo=zone)
        if schedule.planning_start.tzinfo is None:
            window_start = window_start.replace(tzinfo=None)
            window_end = window_end.replace(tzinfo=None)
        chosen = [s for s in schedule.slots if window_start <= s.start <= window_end]
    else:
        wanted = set(selection)
        chosen = [s for s in schedule.slots if s.id in wanted]

    return SlotDeletionPlan(
        schedule_id=schedule.id,
        practitioner_id=schedule.practitioner_id,
        slots=chosen,
        slot_count=len(chosen),
        occupied_count=sum(1 for s in chosen if s.overbooked),
    )


def plan_deletion(
    schedules: list[Schedule], request: DeletionRequest, tz: Optional[tzinfo] = None
) -> DeletionPlan:
    """Dispatch a ``DeletionRequest`` to the matching planner."""
    if request.scope == DeletionScope.SCHEDULES:
        selection = request.date_range if request.date_range is not None else request.target_ids
        return plan_schedule_deletion(schedules, selection, tz)

    if request.schedule_id:
        schedule = next((s for s in schedules if s.id == request.schedule_id), None)
        if schedule is None:
            raise UnknownScheduleError(f"Unknown schedule: {request.schedule_id}")
        selection = request.time_range if request.time_range is not None else request.target_ids
        return plan_slot_deletion(schedule, selection, tz)

    # Slot ids without a schedule: find the owning schedule.
    wanted = set(request.target_ids or [])
    owners = [s for s in schedules if any(slot.id in wanted for slot in s.slots)]
    if len(owners) != 1:
        raise UnknownScheduleError(
            "Slot ids must belong to exactly one schedule; pass schedule_id"
        )
    return plan_slot_deletion(owners[0], list(wanted), tz)


def apply_deletion(schedules: list[Schedule], plan: DeletionPlan) -> list[Schedule]:
    """Return *schedules* without the planned schedules or slots."""
    if isinstance(plan, ScheduleDeletionPlan):
        doomed = set(plan.schedule_ids)
        return [s for s in schedules if s.id not in doomed]

    doomed = set(plan.slot_ids)
    result = []
    for schedule in schedules:
        if schedule.id == plan.schedule_id:
            schedule = schedule.model_copy(
                update={"slots": [s for s in schedule.slots if s.id not in doomed]}
            )
        result.append(schedule)
    return result
