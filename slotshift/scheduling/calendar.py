"""Date grouping and occupancy totals over schedule sets."""

from datetime import date, datetime, tzinfo
from typing import Iterable, Optional

from slotshift.scheduling.models import Schedule


def local_date(ts: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar date of *ts* in the practitioner's timezone.

    Naive timestamps are taken as already local.
    """
    if tz is not None and ts.tzinfo is not None:
        ts = ts.astimezone(tz)
    return ts.date()


def group_by_date(
    schedules: Iterable[Schedule], tz: Optional[tzinfo] = None
) -> dict[date, list[Schedule]]:
    """Group schedules by the local date of ``planning_start``, dates ascending."""
    grouped: dict[date, list[Schedule]] = {}
    for schedule in schedules:
        grouped.setdefault(local_date(schedule.planning_start, tz), []).append(schedule)
    return dict(sorted(grouped.items()))


def slots_on_date(
    schedules: Iterable[Schedule], day: date, tz: Optional[tzinfo] = None
) -> list[Schedule]:
    """Schedules whose planning block starts on *day*."""
    return [s for s in schedules if local_date(s.planning_start, tz) == day]


def total_occupied(schedules: Iterable[Schedule]) -> int:
    return sum(1 for s in schedules for slot in s.slots if slot.overbooked)


def total_available(schedules: Iterable[Schedule]) -> int:
    return sum(1 for s in schedules for slot in s.slots if not slot.overbooked)
