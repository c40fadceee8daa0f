"""Pydantic models for schedules, slots and the transient action requests."""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Caller-side bounds for the shift input form. The engine itself does not clamp.
MAX_SHIFT_MINUTES = 1440
MAX_SHIFT_DAYS = 365


class SlotAppointment(BaseModel):
    """An appointment record linked to a slot."""

    id: str
    patient_name: Optional[str] = None


class Slot(BaseModel):
    """A single bookable time window inside a schedule."""

    id: str
    schedule_id: Optional[str] = None
    status: Optional[str] = None
    start: datetime
    end: datetime
    overbooked: bool = False
    comment: Optional[str] = None
    appointments: list[SlotAppointment] = Field(default_factory=list)

    @model_validator(mode="after")
    def _end_after_start(self) -> "Slot":
        if self.end <= self.start:
            raise ValueError(f"Slot {self.id}: end must be after start")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_free(self) -> bool:
        return not self.overbooked


class Schedule(BaseModel):
    """One practitioner's working block on one calendar day."""

    id: str
    practitioner_id: Optional[str] = None
    specialty_id: Optional[str] = None
    planning_start: datetime
    planning_end: datetime
    comment: Optional[str] = None
    slots: list[Slot] = Field(default_factory=list)

    @field_validator("slots")
    @classmethod
    def _sort_slots(cls, slots: list[Slot]) -> list[Slot]:
        return sorted(slots, key=lambda s: s.start)

    def find_slot(self, slot_id: str) -> Optional[Slot]:
        return next((s for s in self.slots if s.id == slot_id), None)

    def invariant_violations(self) -> list[str]:
        """Return problems with slot bounds and overlaps.

        Schedules come from an external service, so violations are reported
        rather than rejected on construction.
        """
        problems: list[str] = []
        for slot in self.slots:
            if slot.start < self.planning_start or slot.end > self.planning_end:
                problems.append(
                    f"Slot {slot.id} ({slot.start.isoformat()}-{slot.end.isoformat()}) "
                    f"lies outside schedule {self.id} planning window"
                )
        for prev, nxt in zip(self.slots, self.slots[1:]):
            if nxt.start < prev.end:
                problems.append(f"Slots {prev.id} and {nxt.id} overlap")
        return problems


class SlotRef(BaseModel):
    """Structured reference to a slot: practitioner, schedule and slot ids."""

    model_config = ConfigDict(frozen=True)

    practitioner_id: Optional[str] = None
    schedule_id: str
    slot_id: str


class TransferRequest(BaseModel):
    """A slot pairing collected by the UI before validation."""

    source_slot: Slot
    target_slot: Slot
    source_schedule: Schedule
    target_schedule: Schedule
    appointment_id: Optional[str] = None


class ShiftMode(str, Enum):
    """Shift granularity."""

    TIME = "time"
    DAY = "day"


class ShiftRequest(BaseModel):
    """Bulk shift of every schedule in a date group.

    Validates the input-form range (1-1440 minutes, 1-365 days); the shift
    engine accepts anything positive.
    """

    schedule_ids: list[str] = Field(min_length=1)
    mode: ShiftMode
    magnitude: int
    reason: str = Field(min_length=1)
    actor_id: str = Field(min_length=1)

    @model_validator(mode="after")
    def _check_range(self) -> "ShiftRequest":
        limit = MAX_SHIFT_MINUTES if self.mode == ShiftMode.TIME else MAX_SHIFT_DAYS
        unit = "minutes" if self.mode == ShiftMode.TIME else "days"
        if not 1 <= self.magnitude <= limit:
            raise ValueError(f"Shift magnitude must be between 1 and {limit} {unit}")
        if not self.reason.strip():
            raise ValueError("Shift reason must not be blank")
        return self


class DateRange(BaseModel):
    """Inclusive calendar-date range."""

    from_date: date
    to_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.to_date < self.from_date:
            raise ValueError("to_date must not be before from_date")
        return self

    def contains(self, day: date) -> bool:
        return self.from_date <= day <= self.to_date


class TimeWindow(BaseModel):
    """Inclusive time-of-day window applied on a schedule's date."""

    start_time: time
    end_time: time

    @model_validator(mode="after")
    def _ordered(self) -> "TimeWindow":
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class DeletionScope(str, Enum):
    SCHEDULES = "schedules"
    SLOTS = "slots"


class DeletionRequest(BaseModel):
    """Deletion selection: explicit ids, a date range or a time window."""

    scope: DeletionScope
    target_ids: Optional[list[str]] = None
    date_range: Optional[DateRange] = None
    time_range: Optional[TimeWindow] = None
    schedule_id: Optional[str] = Field(
        None, description="Schedule whose slots are selected (slot scope)"
    )

    @model_validator(mode="after")
    def _one_selection(self) -> "DeletionRequest":
        chosen = [
            s for s in (self.target_ids, self.date_range, self.time_range) if s is not None
        ]
        if len(chosen) != 1:
            raise ValueError("Exactly one of target_ids, date_range, time_range is required")
        if self.scope == DeletionScope.SCHEDULES and self.time_range is not None:
            raise ValueError("time_range selects slots, not schedules")
        if self.scope == DeletionScope.SLOTS:
            if self.date_range is not None:
                raise ValueError("date_range selects schedules, not slots")
            if self.time_range is not None and not self.schedule_id:
                raise ValueError("schedule_id is required for a slot time_range")
        return self
