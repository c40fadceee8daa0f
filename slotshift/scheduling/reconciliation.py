"""Optimistic reconciliation of local schedule state with the schedule service.

Each action follows ``Idle -> Pending -> {Committed, Failed}``:

1. the plan is applied to the ``ScheduleCache`` immediately (Pending);
2. the matching command is sent to the ``ScheduleService``;
3. only after that command resolves, every affected practitioner's schedules
   are re-fetched and replace the cached copy wholesale.

The optimistic mutation is a preview; the re-fetched state is the record.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Callable, Optional, Union

from slotshift.observability import ObservabilityLogger, get_observability_logger
from slotshift.scheduling.deletion import (
    ScheduleDeletionPlan,
    SlotDeletionPlan,
    apply_deletion,
)
from slotshift.scheduling.errors import (
    ReconciliationInProgressError,
    SourceNotMovableError,
    StaleCacheError,
    TargetOccupiedError,
    UnknownScheduleError,
    UnknownSlotError,
)
from slotshift.scheduling.models import Schedule, ShiftMode, Slot
from slotshift.scheduling.shift import ShiftPlan, apply_shift
from slotshift.scheduling.transfer import TransferPlan, apply_transfer
from slotshift.service.base import ScheduleService

logger = logging.getLogger(__name__)

Plan = Union[TransferPlan, ShiftPlan, ScheduleDeletionPlan, SlotDeletionPlan]


class ReconciliationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


class ScheduleCache:
    """Caller-owned cache of schedules keyed by practitioner.

    Any number of readers may share it. Only the ``Reconciler`` writes
    optimistic state; ``load`` stores authoritative state from the service.
    """

    def __init__(self):
        self._schedules: dict[str, list[Schedule]] = {}
        self._dirty: set[str] = set()

    def load(self, practitioner_id: str, schedules: list[Schedule]) -> None:
        """Store authoritative schedules and clear the stale flag."""
        self._schedules[practitioner_id] = list(schedules)
        self._dirty.discard(practitioner_id)

    def get(self, practitioner_id: str) -> list[Schedule]:
        """Schedules safe to plan against.

        Raises:
            StaleCacheError: the practitioner has not been refreshed since a
                failed or unconfirmed action
        """
        if practitioner_id in self._dirty:
            raise StaleCacheError(
                f"Schedules for practitioner {practitioner_id} must be re-fetched before planning"
            )
        return list(self._schedules.get(practitioner_id, []))

    def peek(self, practitioner_id: str) -> list[Schedule]:
        """Schedules for display, possibly stale."""
        return list(self._schedules.get(practitioner_id, []))

    def replace(self, practitioner_id: str, schedules: list[Schedule]) -> None:
        """Write optimistic state. Reserved for the ``Reconciler``."""
        self._schedules[practitioner_id] = list(schedules)

    def mark_dirty(self, practitioner_id: str) -> None:
        self._dirty.add(practitioner_id)

    def is_dirty(self, practitioner_id: str) -> bool:
        return practitioner_id in self._dirty

    @property
    def practitioner_ids(self) -> list[str]:
        return list(self._schedules)

    def owner_of(self, schedule_id: str) -> Optional[str]:
        """Practitioner whose cached schedules contain *schedule_id*."""
        for practitioner_id, schedules in self._schedules.items():
            if any(s.id == schedule_id for s in schedules):
                return practitioner_id
        return None

    def find_slot(self, schedule_id: str, slot_id: str) -> Optional[Slot]:
        for schedules in self._schedules.values():
            for schedule in schedules:
                if schedule.id == schedule_id:
                    return schedule.find_slot(slot_id)
        return None


class ReconciliationHandle:
    """Observable progress of one optimistic action."""

    def __init__(self, action: str, plan: Plan, practitioner_ids: list[str]):
        self.id = str(uuid.uuid4())[:8]
        self.action = action
        self.plan = plan
        self.practitioner_ids = practitioner_ids
        self.status = ReconciliationStatus.IDLE
        self.error: Optional[BaseException] = None
        self.refresh_error: Optional[BaseException] = None
        self._listeners: list[Callable[["ReconciliationHandle"], None]] = []
        self._done = asyncio.Event()

    def subscribe(self, callback: Callable[["ReconciliationHandle"], None]) -> None:
        """Call *callback* on every status change."""
        self._listeners.append(callback)

    @property
    def done(self) -> bool:
        return self.status in (ReconciliationStatus.COMMITTED, ReconciliationStatus.FAILED)

    async def wait(self) -> ReconciliationStatus:
        """Wait for the terminal status.

        Cancelling the wait does not cancel the commit or the re-fetch.
        """
        await self._done.wait()
        return self.status

    def _set_status(self, status: ReconciliationStatus) -> None:
        self.status = status
        for callback in self._listeners:
            try:
                callback(self)
            except Exception as e:
                logger.warning(f"Reconciliation listener failed: {e}")
        if self.done:
            self._done.set()


class Reconciler:
    """Applies plans optimistically and reconciles them with the service."""

    def __init__(
        self,
        service: ScheduleService,
        cache: ScheduleCache,
        obs: Optional[ObservabilityLogger] = None,
    ):
        self.service = service
        self.cache = cache
        self.obs = obs or get_observability_logger()
        self._pending: dict[str, ReconciliationHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    def is_pending(self, practitioner_id: str) -> bool:
        return practitioner_id in self._pending

    def begin(
        self,
        plan: Plan,
        *,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> ReconciliationHandle:
        """Apply *plan* to the cache and start committing it.

        Must be called from a running event loop. *reason* and *actor_id*
        annotate transfers and deletions; shift plans carry their own.

        Raises:
            ReconciliationInProgressError: an affected practitioner already
                has a pending action
            StaleCacheError: an affected practitioner's cache is dirty
            UnknownScheduleError, UnknownSlotError, TargetOccupiedError,
            SourceNotMovableError: the plan no longer fits the cache
        """
        loop = asyncio.get_running_loop()
        action = self._action_name(plan)
        practitioner_ids = self._affected_practitioners(plan)

        busy = [p for p in practitioner_ids if p in self._pending]
        if busy:
            raise ReconciliationInProgressError(
                f"Practitioner(s) {', '.join(busy)} already have a pending action"
            )
        for practitioner_id in practitioner_ids:
            self.cache.get(practitioner_id)

        handle = ReconciliationHandle(action, plan, practitioner_ids)
        self._apply_optimistic(plan, practitioner_ids)
        for practitioner_id in practitioner_ids:
            self._pending[practitioner_id] = handle
        handle._set_status(ReconciliationStatus.PENDING)

        if isinstance(plan, TransferPlan) and plan.degraded:
            self.obs.log_degraded_transfer(
                appointment_id=plan.appointment_id,
                resolution=plan.resolution.value,
                source_slot_id=plan.source.slot_id,
                target_slot_id=plan.target.slot_id,
                request_id=handle.id,
            )

        task = loop.create_task(self._run(handle, reason, actor_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    async def reconcile(
        self,
        plan: Plan,
        *,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> ReconciliationHandle:
        """Begin *plan* and wait for its terminal status."""
        handle = self.begin(plan, reason=reason, actor_id=actor_id)
        await handle.wait()
        return handle

    async def refresh(self, practitioner_id: str) -> list[Schedule]:
        """Caller-triggered re-fetch; clears the stale flag on success."""
        try:
            schedules = await self.service.fetch_schedules(practitioner_id)
        except Exception as e:
            self.cache.mark_dirty(practitioner_id)
            self.obs.log_cache_refresh(practitioner_id, error=e)
            raise
        self.cache.load(practitioner_id, schedules)
        self.obs.log_cache_refresh(practitioner_id, schedule_count=len(schedules))
        return schedules

    # Plan inspection

    @staticmethod
    def _action_name(plan: Plan) -> str:
        if isinstance(plan, TransferPlan):
            return "transfer"
        if isinstance(plan, ShiftPlan):
            return f"{plan.mode.value}_shift"
        if isinstance(plan, ScheduleDeletionPlan):
            return "schedule_deletion"
        if isinstance(plan, SlotDeletionPlan):
            return "slot_deletion"
        raise TypeError(f"Unsupported plan type: {type(plan).__name__}")

    @staticmethod
    def _schedule_ids(plan: Plan) -> list[str]:
        if isinstance(plan, SlotDeletionPlan):
            return [plan.schedule_id]
        return plan.schedule_ids

    def _affected_practitioners(self, plan: Plan) -> list[str]:
        schedule_ids = self._schedule_ids(plan)
        if not schedule_ids or (isinstance(plan, SlotDeletionPlan) and not plan.slots):
            raise ValueError("Plan selects nothing to reconcile")

        practitioner_ids: list[str] = []
        for schedule_id in schedule_ids:
            owner = self.cache.owner_of(schedule_id)
            if owner is None:
                raise UnknownScheduleError(f"Schedule {schedule_id} is not in the cache")
            if owner not in practitioner_ids:
                practitioner_ids.append(owner)
        return practitioner_ids

    # Optimistic mutation

    def _apply_optimistic(self, plan: Plan, practitioner_ids: list[str]) -> None:
        if isinstance(plan, TransferPlan):
            self._check_transfer_still_valid(plan)
            for practitioner_id in practitioner_ids:
                self.cache.replace(
                    practitioner_id,
                    apply_transfer(self.cache.peek(practitioner_id), plan, strict=False),
                )
        elif isinstance(plan, ShiftPlan):
            for practitioner_id in practitioner_ids:
                self.cache.replace(practitioner_id, apply_shift(self.cache.peek(practitioner_id), plan))
        else:
            for practitioner_id in practitioner_ids:
                self.cache.replace(
                    practitioner_id, apply_deletion(self.cache.peek(practitioner_id), plan)
                )

    def _check_transfer_still_valid(self, plan: TransferPlan) -> None:
        source = self.cache.find_slot(plan.source.schedule_id, plan.source.slot_id)
        target = self.cache.find_slot(plan.target.schedule_id, plan.target.slot_id)
        if source is None or target is None:
            raise UnknownSlotError("Transfer slots are no longer in the cache")
        if not source.overbooked:
            raise SourceNotMovableError(f"Slot {source.id} no longer holds an appointment")
        if target.overbooked:
            raise TargetOccupiedError()

    # Commit and re-fetch

    async def _run(
        self,
        handle: ReconciliationHandle,
        reason: Optional[str],
        actor_id: Optional[str],
    ) -> None:
        plan = handle.plan
        if isinstance(plan, ShiftPlan):
            reason, actor_id = plan.reason, plan.actor_id

        committed = False
        try:
            try:
                with self.obs.reconciliation(
                    handle.action,
                    handle.practitioner_ids,
                    schedule_ids=self._schedule_ids(plan),
                    reason=reason,
                    actor_id=actor_id,
                    request_id=handle.id,
                ):
                    await self._commit(plan, reason, actor_id)
                committed = True
            except Exception as e:
                handle.error = e
                for practitioner_id in handle.practitioner_ids:
                    self.cache.mark_dirty(practitioner_id)
                logger.error(f"{handle.action} commit failed ({handle.id}): {e}")

            handle.refresh_error = await self._refetch(handle.practitioner_ids)
        except BaseException as e:
            # Interrupted (task cancelled): the cached state is unconfirmed.
            for practitioner_id in handle.practitioner_ids:
                self.cache.mark_dirty(practitioner_id)
            if committed:
                handle.refresh_error = e
            else:
                handle.error = handle.error or e
            logger.warning(f"{handle.action} interrupted ({handle.id}): {type(e).__name__}")
            raise
        finally:
            for practitioner_id in handle.practitioner_ids:
                self._pending.pop(practitioner_id, None)
            handle._set_status(
                ReconciliationStatus.FAILED if handle.error else ReconciliationStatus.COMMITTED
            )

    async def _commit(self, plan: Plan, reason: Optional[str], actor_id: Optional[str]) -> None:
        if isinstance(plan, TransferPlan):
            await self.service.commit_transfer(
                plan.appointment_id, plan.target.slot_id, reason=reason, changed_by=actor_id
            )
        elif isinstance(plan, ShiftPlan):
            if plan.mode == ShiftMode.TIME:
                calls = [
                    self.service.commit_minute_shift(sid, plan.magnitude, plan.reason, plan.actor_id)
                    for sid in plan.schedule_ids
                ]
            else:
                calls = [
                    self.service.commit_day_shift(sid, plan.magnitude, plan.reason, plan.actor_id)
                    for sid in plan.schedule_ids
                ]
            # Let every call settle before re-fetching, then surface the first failure.
            results = await asyncio.gather(*calls, return_exceptions=True)
            errors = [r for r in results if isinstance(r, Exception)]
            if errors:
                raise errors[0]
        elif isinstance(plan, ScheduleDeletionPlan):
            await self.service.commit_schedule_deletion(plan.schedule_ids)
        else:
            await self.service.commit_slot_deletion(plan.slot_ids)

    async def _refetch(self, practitioner_ids: list[str]) -> Optional[Exception]:
        first_error: Optional[Exception] = None
        for practitioner_id in practitioner_ids:
            try:
                await self.refresh(practitioner_id)
            except Exception as e:
                logger.error(f"Re-fetch for practitioner {practitioner_id} failed: {e}")
                first_error = first_error or e
        return first_error
