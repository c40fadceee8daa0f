"""Bulk time and day shifts of schedule slot grids."""

import logging
import math
from datetime import timedelta
from numbers import Real

from pydantic import BaseModel

from slotshift.scheduling.errors import (
    InvalidMagnitudeError,
    MissingActorError,
    MissingReasonError,
    UnknownScheduleError,
)
from slotshift.scheduling.models import Schedule, ShiftMode, ShiftRequest

logger = logging.getLogger(__name__)


class ShiftPlan(BaseModel):
    """Shifted copies of the selected schedules plus the audit fields."""

    mode: ShiftMode
    magnitude: int
    reason: str
    actor_id: str
    original: list[Schedule]
    shifted: list[Schedule]

    @property
    def schedule_ids(self) -> list[str]:
        return [s.id for s in self.shifted]


def _check_magnitude(value: object, unit: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidMagnitudeError(f"Shift must be a number of {unit}, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidMagnitudeError(f"Shift must be a positive number of {unit}, got {value!r}")
    if int(value) != value:
        raise InvalidMagnitudeError(f"Shift must be a whole number of {unit}, got {value!r}")
    return int(value)


def _check_audit(reason: str, actor_id: str) -> None:
    if not reason or not reason.strip():
        raise MissingReasonError("A reason is required to shift schedules")
    if not actor_id or not actor_id.strip():
        raise MissingActorError("An actor is required to shift schedules")


def _translate(schedules: list[Schedule], delta: timedelta) -> list[Schedule]:
    shifted = []
    try:
        for schedule in schedules:
            slots = [
                slot.model_copy(update={"start": slot.start + delta, "end": slot.end + delta})
                for slot in schedule.slots
            ]
            shifted.append(
                schedule.model_copy(
                    update={
                        "planning_start": schedule.planning_start + delta,
                        "planning_end": schedule.planning_end + delta,
                        "slots": slots,
                    }
                )
            )
    except OverflowError as e:
        raise InvalidMagnitudeError(
            "Shift moves slots outside the supported date range"
        ) from e
    return shifted


def shift_by_minutes(
    schedules: list[Schedule], minutes: int, *, reason: str, actor_id: str
) -> list[Schedule]:
    """Delay every slot of every schedule by *minutes*.

    Durations, occupancy, slot ids and ordering are preserved. The engine
    does not clamp to one day; that bound belongs to ``ShiftRequest``.

    Raises:
        InvalidMagnitudeError, MissingReasonError, MissingActorError
    """
    minutes = _check_magnitude(minutes, "minutes")
    _check_audit(reason, actor_id)
    logger.debug(f"Shifting {len(schedules)} schedule(s) by {minutes} min (actor={actor_id})")
    return _translate(schedules, timedelta(minutes=minutes))


def shift_by_days(
    schedules: list[Schedule], days: int, *, reason: str, actor_id: str
) -> list[Schedule]:
    """Move every schedule forward by *days*, keeping each slot's time of day.

    Raises:
        InvalidMagnitudeError, MissingReasonError, MissingActorError
    """
    days = _check_magnitude(days, "days")
    _check_audit(reason, actor_id)
    logger.debug(f"Shifting {len(schedules)} schedule(s) by {days} day(s) (actor={actor_id})")
    return _translate(schedules, timedelta(days=days))


def plan_shift(schedules: list[Schedule], request: ShiftRequest) -> ShiftPlan:
    """Select the requested schedules and compute their shifted copies."""
    by_id = {s.id: s for s in schedules}
    missing = [sid for sid in request.schedule_ids if sid not in by_id]
    if missing:
        raise UnknownScheduleError(f"Unknown schedule(s): {', '.join(missing)}")

    selected = [by_id[sid] for sid in dict.fromkeys(request.schedule_ids)]
    if request.mode == ShiftMode.TIME:
        shifted = shift_by_minutes(
            selected, request.magnitude, reason=request.reason, actor_id=request.actor_id
        )
    else:
        shifted = shift_by_days(
            selected, request.magnitude, reason=request.reason, actor_id=request.actor_id
        )

    return ShiftPlan(
        mode=request.mode,
        magnitude=request.magnitude,
        reason=request.reason,
        actor_id=request.actor_id,
        original=selected,
        shifted=shifted,
    )


def apply_shift(schedules: list[Schedule], plan: ShiftPlan) -> list[Schedule]:
    """Return *schedules* with shifted copies swapped in by id."""
    shifted = {s.id: s for s in plan.shifted}
    return [shifted.get(s.id, s) for s in schedules]
