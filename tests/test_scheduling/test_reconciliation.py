"""Tests for optimistic reconciliation against the schedule service."""

import asyncio
import json
from datetime import date, datetime
from unittest.mock import AsyncMock

import pytest

from slotshift.scheduling import (
    DateRange,
    ReconciliationInProgressError,
    ReconciliationStatus,
    Reconciler,
    ScheduleCache,
    ShiftMode,
    ShiftRequest,
    SlotRef,
    StaleCacheError,
    TargetOccupiedError,
    UnknownScheduleError,
    apply_transfer,
    plan_schedule_deletion,
    plan_shift,
    plan_slot_deletion,
    plan_transfer,
    validate_transfer,
)
from slotshift.service import CommitError, ScheduleService, ServiceConnectionError


@pytest.fixture
def service():
    """Mock schedule service whose fetch returns whatever ``server`` holds."""
    svc = AsyncMock(spec=ScheduleService)
    svc.server = {}

    async def fetch(practitioner_id):
        return svc.server.get(practitioner_id, [])

    svc.fetch_schedules.side_effect = fetch
    return svc


@pytest.fixture
def cache(worked_schedule):
    cache = ScheduleCache()
    cache.load("P1", [worked_schedule])
    return cache


@pytest.fixture
def reconciler(service, cache, obs_logger):
    return Reconciler(service, cache, obs=obs_logger)


@pytest.fixture
def transfer_plan(worked_schedule):
    return validate_transfer(
        worked_schedule.find_slot("S1"),
        worked_schedule.find_slot("S2"),
        source_schedule=worked_schedule,
        target_schedule=worked_schedule,
    )


class TestScheduleCache:
    """Tests for the caller-owned cache."""

    def test_get_returns_copy(self, cache):
        schedules = cache.get("P1")
        schedules.clear()

        assert len(cache.get("P1")) == 1

    def test_dirty_blocks_get_not_peek(self, cache):
        cache.mark_dirty("P1")

        with pytest.raises(StaleCacheError):
            cache.get("P1")
        assert len(cache.peek("P1")) == 1

    def test_load_clears_dirty(self, cache, worked_schedule):
        cache.mark_dirty("P1")
        cache.load("P1", [worked_schedule])

        assert not cache.is_dirty("P1")

    def test_owner_and_slot_lookup(self, cache):
        assert cache.owner_of("SCH1") == "P1"
        assert cache.owner_of("SCH9") is None
        assert cache.find_slot("SCH1", "S2").id == "S2"
        assert cache.practitioner_ids == ["P1"]


class TestTransferReconciliation:
    """Tests for reconciling a transfer."""

    @pytest.mark.asyncio
    async def test_optimistic_then_committed(self, reconciler, service, cache, transfer_plan, worked_schedule):
        service.server["P1"] = apply_transfer([worked_schedule], transfer_plan)

        handle = reconciler.begin(transfer_plan, reason="Patient request", actor_id="U1")

        assert handle.status == ReconciliationStatus.PENDING
        assert reconciler.is_pending("P1")
        optimistic = cache.peek("P1")[0]
        assert not optimistic.find_slot("S1").overbooked
        assert optimistic.find_slot("S2").overbooked

        status = await handle.wait()

        assert status == ReconciliationStatus.COMMITTED
        assert handle.error is None
        assert not reconciler.is_pending("P1")
        service.commit_transfer.assert_awaited_once_with(
            "A1", "S2", reason="Patient request", changed_by="U1"
        )

    @pytest.mark.asyncio
    async def test_fetched_state_replaces_optimistic(self, reconciler, service, cache, transfer_plan, worked_schedule):
        # The service placed the appointment differently than the preview.
        server_copy = worked_schedule.model_copy(update={"comment": "confirmed"})
        service.server["P1"] = [server_copy]

        handle = await reconciler.reconcile(transfer_plan)

        assert handle.status == ReconciliationStatus.COMMITTED
        assert cache.get("P1") == [server_copy]

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back_to_server(self, reconciler, service, cache, transfer_plan, worked_schedule):
        service.server["P1"] = [worked_schedule]
        service.commit_transfer.side_effect = CommitError("slot taken", status_code=409)

        handle = await reconciler.reconcile(transfer_plan)

        assert handle.status == ReconciliationStatus.FAILED
        assert isinstance(handle.error, CommitError)
        assert cache.get("P1") == [worked_schedule]
        assert cache.get("P1")[0].find_slot("S1").overbooked

    @pytest.mark.asyncio
    async def test_failed_commit_and_refetch_leave_cache_stale(self, reconciler, service, cache, transfer_plan):
        service.commit_transfer.side_effect = CommitError("boom")
        service.fetch_schedules.side_effect = ServiceConnectionError("down")

        handle = await reconciler.reconcile(transfer_plan)

        assert handle.status == ReconciliationStatus.FAILED
        assert isinstance(handle.refresh_error, ServiceConnectionError)
        with pytest.raises(StaleCacheError):
            cache.get("P1")
        with pytest.raises(StaleCacheError):
            reconciler.begin(transfer_plan)

    @pytest.mark.asyncio
    async def test_committed_but_refetch_failed(self, reconciler, service, cache, transfer_plan):
        service.fetch_schedules.side_effect = ServiceConnectionError("down")

        handle = await reconciler.reconcile(transfer_plan)

        assert handle.status == ReconciliationStatus.COMMITTED
        assert handle.refresh_error is not None
        assert cache.is_dirty("P1")

    @pytest.mark.asyncio
    async def test_manual_refresh_recovers(self, reconciler, service, cache, worked_schedule):
        cache.mark_dirty("P1")
        service.server["P1"] = [worked_schedule]

        schedules = await reconciler.refresh("P1")

        assert schedules == [worked_schedule]
        assert cache.get("P1") == [worked_schedule]

    @pytest.mark.asyncio
    async def test_second_action_rejected_while_pending(self, reconciler, service, transfer_plan, worked_schedule):
        release = asyncio.Event()

        async def slow_commit(*args, **kwargs):
            await release.wait()

        service.commit_transfer.side_effect = slow_commit
        service.server["P1"] = [worked_schedule]

        handle = reconciler.begin(transfer_plan)
        with pytest.raises(ReconciliationInProgressError):
            reconciler.begin(transfer_plan)

        release.set()
        assert await handle.wait() == ReconciliationStatus.COMMITTED

    @pytest.mark.asyncio
    async def test_cancelled_commit_releases_practitioner(self, reconciler, service, cache, transfer_plan):
        async def hanging_commit(*args, **kwargs):
            await asyncio.Event().wait()

        service.commit_transfer.side_effect = hanging_commit

        handle = reconciler.begin(transfer_plan)
        [task] = list(reconciler._tasks)
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert handle.status == ReconciliationStatus.FAILED
        assert isinstance(handle.error, asyncio.CancelledError)
        assert not reconciler.is_pending("P1")
        assert cache.is_dirty("P1")
        service.fetch_schedules.assert_not_awaited()
        # Stale, not stuck: the next action asks for a refresh first.
        with pytest.raises(StaleCacheError):
            reconciler.begin(transfer_plan)

    @pytest.mark.asyncio
    async def test_stale_plan_rejected_without_mutation(self, reconciler, cache, transfer_plan, worked_schedule):
        # Someone else filled S2 after the plan was made.
        s2 = worked_schedule.find_slot("S2").model_copy(update={"overbooked": True})
        cache.load("P1", [worked_schedule.model_copy(update={"slots": [worked_schedule.find_slot("S1"), s2]})])
        before = cache.peek("P1")

        with pytest.raises(TargetOccupiedError):
            reconciler.begin(transfer_plan)

        assert cache.peek("P1") == before
        assert not reconciler.is_pending("P1")

    @pytest.mark.asyncio
    async def test_terminal_status_after_refetch(self, reconciler, service, transfer_plan, worked_schedule):
        service.server["P1"] = [worked_schedule]
        seen = []
        handle = reconciler.begin(transfer_plan)
        handle.subscribe(lambda h: seen.append((h.status, service.fetch_schedules.await_count)))

        await handle.wait()

        assert seen == [(ReconciliationStatus.COMMITTED, 1)]

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_reconciliation(self, reconciler, service, transfer_plan, worked_schedule):
        service.server["P1"] = [worked_schedule]
        handle = reconciler.begin(transfer_plan)

        def broken(_):
            raise RuntimeError("listener bug")

        handle.subscribe(broken)

        assert await handle.wait() == ReconciliationStatus.COMMITTED

    @pytest.mark.asyncio
    async def test_cross_practitioner_refetches_both(self, service, obs_logger, make_schedule):
        p1 = make_schedule("SCH1", "P1", datetime(2024, 6, 1, 9), occupied={0: "A1"})
        p2 = make_schedule("SCH2", "P2", datetime(2024, 6, 1, 9))
        cache = ScheduleCache()
        cache.load("P1", [p1])
        cache.load("P2", [p2])
        reconciler = Reconciler(service, cache, obs=obs_logger)
        plan = plan_transfer(
            [p1, p2],
            SlotRef(schedule_id="SCH1", slot_id="SCH1-S1"),
            SlotRef(schedule_id="SCH2", slot_id="SCH2-S2"),
        )
        service.server.update({"P1": [p1], "P2": [p2]})

        handle = reconciler.begin(plan)

        assert handle.practitioner_ids == ["P1", "P2"]
        assert not cache.peek("P1")[0].slots[0].overbooked
        assert cache.peek("P2")[0].slots[1].overbooked

        await handle.wait()

        fetched = sorted(call.args[0] for call in service.fetch_schedules.await_args_list)
        assert fetched == ["P1", "P2"]

    @pytest.mark.asyncio
    async def test_degraded_transfer_is_audited(self, reconciler, service, cache, worked_schedule, temp_log_dir):
        s1 = worked_schedule.find_slot("S1").model_copy(update={"appointments": []})
        schedule = worked_schedule.model_copy(update={"slots": [s1, worked_schedule.find_slot("S2")]})
        cache.load("P1", [schedule])
        service.server["P1"] = [schedule]
        plan = validate_transfer(s1, schedule.find_slot("S2"), source_schedule=schedule, target_schedule=schedule)

        await reconciler.reconcile(plan)

        audit = [json.loads(line) for line in (temp_log_dir / "transfer_audit.jsonl").read_text().splitlines()]
        assert audit[0]["event_type"] == "transfer_degraded"
        assert audit[0]["appointment_id"] == "S1"
        service.commit_transfer.assert_awaited_once()
        assert service.commit_transfer.await_args.args[0] == "S1"


class TestShiftReconciliation:
    """Tests for reconciling bulk shifts."""

    @pytest.fixture
    def day(self, make_schedule):
        return [
            make_schedule("SCH1", "P1", datetime(2024, 6, 1, 9)),
            make_schedule("SCH2", "P1", datetime(2024, 6, 1, 14)),
        ]

    @pytest.fixture
    def shift_reconciler(self, service, obs_logger, day):
        cache = ScheduleCache()
        cache.load("P1", day)
        service.server["P1"] = day
        return Reconciler(service, cache, obs=obs_logger)

    @pytest.mark.asyncio
    async def test_minute_shift_commits_each_schedule(self, shift_reconciler, service, day):
        request = ShiftRequest(
            schedule_ids=["SCH1", "SCH2"], mode=ShiftMode.TIME, magnitude=15,
            reason="Doctor delayed", actor_id="U1",
        )
        plan = plan_shift(day, request)

        handle = await shift_reconciler.reconcile(plan)

        assert handle.status == ReconciliationStatus.COMMITTED
        assert handle.action == "time_shift"
        awaited = sorted(c.args for c in service.commit_minute_shift.await_args_list)
        assert awaited == [
            ("SCH1", 15, "Doctor delayed", "U1"),
            ("SCH2", 15, "Doctor delayed", "U1"),
        ]

    @pytest.mark.asyncio
    async def test_day_shift(self, shift_reconciler, service, day):
        request = ShiftRequest(
            schedule_ids=["SCH1"], mode=ShiftMode.DAY, magnitude=2, reason="Closed", actor_id="U1"
        )

        handle = await shift_reconciler.reconcile(plan_shift(day, request))

        assert handle.action == "day_shift"
        service.commit_day_shift.assert_awaited_once_with("SCH1", 2, "Closed", "U1")
        service.commit_minute_shift.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_failure_still_settles_every_call(self, shift_reconciler, service, day):
        async def commit(schedule_id, *args):
            if schedule_id == "SCH1":
                raise CommitError("locked")

        service.commit_minute_shift.side_effect = commit
        request = ShiftRequest(
            schedule_ids=["SCH1", "SCH2"], mode=ShiftMode.TIME, magnitude=5, reason="r", actor_id="U1"
        )

        handle = await shift_reconciler.reconcile(plan_shift(day, request))

        assert handle.status == ReconciliationStatus.FAILED
        assert service.commit_minute_shift.await_count == 2
        # Server state wins after the failure.
        assert shift_reconciler.cache.get("P1") == day

    @pytest.mark.asyncio
    async def test_audit_event_carries_reason_and_actor(self, shift_reconciler, day, temp_log_dir):
        request = ShiftRequest(
            schedule_ids=["SCH1"], mode=ShiftMode.TIME, magnitude=10, reason="Late start", actor_id="U9"
        )

        await shift_reconciler.reconcile(plan_shift(day, request))

        events = [
            json.loads(line)
            for line in (temp_log_dir / "reconciliation.jsonl").read_text().splitlines()
        ]
        assert events[-1]["event_type"] == "reconciliation_committed"
        assert events[-1]["reason"] == "Late start"
        assert events[-1]["actor_id"] == "U9"
        assert events[-1]["schedule_ids"] == ["SCH1"]


class TestDeletionReconciliation:
    """Tests for reconciling deletions."""

    @pytest.mark.asyncio
    async def test_schedule_deletion(self, reconciler, service, cache, worked_schedule):
        plan = plan_schedule_deletion(
            [worked_schedule], DateRange(from_date=date(2024, 6, 1), to_date=date(2024, 6, 1))
        )

        handle = reconciler.begin(plan)
        assert cache.peek("P1") == []

        await handle.wait()

        service.commit_schedule_deletion.assert_awaited_once_with(["SCH1"])
        assert cache.get("P1") == []

    @pytest.mark.asyncio
    async def test_slot_deletion(self, reconciler, service, cache, worked_schedule):
        plan = plan_slot_deletion(worked_schedule, ["S2"])

        handle = await reconciler.reconcile(plan)

        assert handle.action == "slot_deletion"
        service.commit_slot_deletion.assert_awaited_once_with(["S2"])

    @pytest.mark.asyncio
    async def test_empty_plan_rejected(self, reconciler, worked_schedule):
        with pytest.raises(ValueError):
            reconciler.begin(plan_slot_deletion(worked_schedule, ["nope"]))

    @pytest.mark.asyncio
    async def test_unknown_schedule(self, reconciler, make_schedule):
        other = make_schedule("SCH9", "P9", datetime(2024, 6, 1, 9))

        with pytest.raises(UnknownScheduleError):
            reconciler.begin(plan_schedule_deletion([other], ["SCH9"]))


class TestEventLoopRequirement:
    def test_begin_needs_running_loop(self, reconciler, transfer_plan):
        with pytest.raises(RuntimeError):
            reconciler.begin(transfer_plan)
