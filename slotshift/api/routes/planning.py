"""Planning preview endpoints.

The UI posts the schedules it is displaying together with a candidate
action and gets back the validated plan and the resulting schedules. Nothing
here talks to the schedule service; committing is the reconciler's job.
"""

import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from slotshift.config import Settings, get_settings
from slotshift.scheduling import (
    DeletionRequest,
    Schedule,
    ShiftMode,
    ShiftRequest,
    ScheduleDeletionPlan,
    TransferPlan,
    apply_deletion,
    apply_shift,
    apply_transfer,
    decode_drag_key,
    group_by_date,
    plan_deletion,
    plan_shift,
    plan_transfer,
    total_available,
    total_occupied,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/planning")


# ---------------------------------------------------------------------------
# Request/response schemas
# ---------------------------------------------------------------------------

class TransferPreviewRequest(BaseModel):
    schedules: list[Schedule]
    source_key: str = Field(..., description="Drag key of the occupied slot")
    target_key: str = Field(..., description="Drag key of the free slot")
    practitioner_id: Optional[str] = Field(
        None, description="Practitioner shown on a single-practitioner board"
    )
    practitioner_names: dict[str, str] = Field(default_factory=dict)
    appointment_id: Optional[str] = None


class TransferPreviewResponse(BaseModel):
    plan: TransferPlan
    message: str
    degraded: bool
    schedules: list[Schedule]


class ShiftPreviewRequest(BaseModel):
    schedules: list[Schedule]
    request: ShiftRequest


class ShiftPreviewResponse(BaseModel):
    mode: ShiftMode
    magnitude: int
    schedule_ids: list[str]
    schedules: list[Schedule]


class DeletionPreviewRequest(BaseModel):
    schedules: list[Schedule]
    request: DeletionRequest


class DeletionPreviewResponse(BaseModel):
    scope: Literal["schedules", "slots"]
    schedule_ids: list[str] = []
    slot_ids: list[str] = []
    slot_count: int
    occupied_count: int
    warning: str
    schedules: list[Schedule]


class ScheduleSet(BaseModel):
    schedules: list[Schedule]


class DateStats(BaseModel):
    date: date
    schedule_count: int
    occupied: int
    available: int


class StatsResponse(BaseModel):
    dates: list[DateStats]
    total_occupied: int
    total_available: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/transfer", response_model=TransferPreviewResponse)
async def preview_transfer(
    body: TransferPreviewRequest,
    settings: Settings = Depends(get_settings),
) -> TransferPreviewResponse:
    """Validate a drag-and-drop transfer between two slots."""
    source = decode_drag_key(body.source_key, body.practitioner_id)
    target = decode_drag_key(body.target_key, body.practitioner_id)

    plan = plan_transfer(
        body.schedules,
        source,
        target,
        practitioner_names=body.practitioner_names,
        appointment_id=body.appointment_id,
        block_degraded=settings.block_degraded_transfers,
        tz=settings.timezone,
    )
    logger.info(
        f"Transfer preview: {body.source_key} -> {body.target_key} "
        f"appointment={plan.appointment_id} resolution={plan.resolution.value}"
    )

    return TransferPreviewResponse(
        plan=plan,
        message=plan.summary(),
        degraded=plan.degraded,
        schedules=apply_transfer(body.schedules, plan),
    )


@router.post("/shift", response_model=ShiftPreviewResponse)
async def preview_shift(body: ShiftPreviewRequest) -> ShiftPreviewResponse:
    """Compute the slot grid after a time or day shift."""
    plan = plan_shift(body.schedules, body.request)
    logger.info(
        f"Shift preview: {plan.mode.value} +{plan.magnitude} "
        f"on {len(plan.schedule_ids)} schedule(s) by {plan.actor_id}"
    )
    return ShiftPreviewResponse(
        mode=plan.mode,
        magnitude=plan.magnitude,
        schedule_ids=plan.schedule_ids,
        schedules=apply_shift(body.schedules, plan),
    )


@router.post("/deletion", response_model=DeletionPreviewResponse)
async def preview_deletion(
    body: DeletionPreviewRequest,
    settings: Settings = Depends(get_settings),
) -> DeletionPreviewResponse:
    """Preview which schedules or slots a bulk deletion would remove."""
    plan = plan_deletion(body.schedules, body.request, tz=settings.timezone)
    remaining = apply_deletion(body.schedules, plan)

    if isinstance(plan, ScheduleDeletionPlan):
        return DeletionPreviewResponse(
            scope="schedules",
            schedule_ids=plan.schedule_ids,
            slot_ids=[slot.id for s in plan.to_delete for slot in s.slots],
            slot_count=plan.slot_count,
            occupied_count=plan.occupied_count,
            warning=plan.warning(),
            schedules=remaining,
        )
    return DeletionPreviewResponse(
        scope="slots",
        schedule_ids=[plan.schedule_id],
        slot_ids=plan.slot_ids,
        slot_count=plan.slot_count,
        occupied_count=plan.occupied_count,
        warning=plan.warning(),
        schedules=remaining,
    )


@router.post("/stats", response_model=StatsResponse)
async def schedule_stats(
    body: ScheduleSet,
    settings: Settings = Depends(get_settings),
) -> StatsResponse:
    """Occupied and available slot counts per calendar date."""
    grouped = group_by_date(body.schedules, tz=settings.timezone)
    return StatsResponse(
        dates=[
            DateStats(
                date=day,
                schedule_count=len(schedules),
                occupied=total_occupied(schedules),
                available=total_available(schedules),
            )
            for day, schedules in grouped.items()
        ],
        total_occupied=total_occupied(body.schedules),
        total_available=total_available(body.schedules),
    )
