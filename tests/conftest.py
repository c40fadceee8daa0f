"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from typing import Optional

import pytest

from slotshift.observability import ObservabilityLogger
from slotshift.scheduling import Schedule, Slot, SlotAppointment


def _slot(
    slot_id: str,
    schedule_id: str,
    start: datetime,
    minutes: int = 30,
    occupied: bool = False,
    appointment_id: Optional[str] = None,
    comment: Optional[str] = None,
) -> Slot:
    return Slot(
        id=slot_id,
        schedule_id=schedule_id,
        start=start,
        end=start + timedelta(minutes=minutes),
        overbooked=occupied,
        comment=comment,
        appointments=[SlotAppointment(id=appointment_id)] if appointment_id else [],
    )


@pytest.fixture
def make_slot():
    """Factory for slots: make_slot(id, schedule_id, start, minutes=30, occupied=False, ...)."""
    return _slot


@pytest.fixture
def make_schedule():
    """Factory for a schedule of back-to-back slots.

    ``occupied`` maps slot index to the appointment id it holds.
    """

    def _make(
        schedule_id: str,
        practitioner_id: str,
        start: datetime,
        count: int = 4,
        minutes: int = 30,
        occupied: Optional[dict[int, str]] = None,
    ) -> Schedule:
        occupied = occupied or {}
        slots = [
            _slot(
                f"{schedule_id}-S{i + 1}",
                schedule_id,
                start + timedelta(minutes=minutes * i),
                minutes=minutes,
                occupied=i in occupied,
                appointment_id=occupied.get(i),
            )
            for i in range(count)
        ]
        return Schedule(
            id=schedule_id,
            practitioner_id=practitioner_id,
            planning_start=start,
            planning_end=start + timedelta(minutes=minutes * count),
            slots=slots,
        )

    return _make


@pytest.fixture
def worked_schedule():
    """SCH1 for P1 on 2024-06-01: S1 09:00-09:30 holds A1, S2 09:30-10:00 is free."""
    start = datetime(2024, 6, 1, 9, 0)
    return Schedule(
        id="SCH1",
        practitioner_id="P1",
        planning_start=start,
        planning_end=datetime(2024, 6, 1, 12, 0),
        slots=[
            _slot("S1", "SCH1", start, occupied=True, appointment_id="A1"),
            _slot("S2", "SCH1", start + timedelta(minutes=30)),
        ],
    )


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create temporary log directory."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def obs_logger(temp_log_dir):
    """Create observability logger with temp directory."""
    return ObservabilityLogger(log_dir=temp_log_dir, enabled=True)
