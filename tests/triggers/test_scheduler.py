"""Tests for steward.triggers.scheduler.BackgroundTaskScheduler

Tests cover:
- Maturity gating and autonomy caps on background calls
- Undeclared tools and custom planners
- Event dispatch, directly and through an event bus
- Cron due-time bookkeeping and housekeeping
"""

import pytest

from steward.autonomy import AutonomyGate, AutonomyPreset, AutonomySettings, GraduationTracker
from steward.autonomy.models import OwnerProfile, SubscriptionTier
from steward.confidence import ConfidenceCalibrator, InMemoryHistory
from steward.orchestrator import (
    ApprovalQueue,
    AuditLogger,
    MemoryAuditSink,
    PendingActionStatus,
    ToolCallPipeline,
)
from steward.resilience.executor import ResilientToolExecutor
from steward.tools.catalog import ToolCatalog
from steward.tools.models import AutonomyLevel
from steward.triggers import (
    BUILTIN_TASKS,
    BackgroundTaskDefinition,
    BackgroundTaskScheduler,
    Event,
    TaskCall,
    TriggerType,
)


class _Directory:
    def __init__(self, *owners):
        self._owners = {o.owner_id: o for o in owners}

    async def list_owners(self):
        return list(self._owners.values())

    async def get_owner(self, owner_id):
        return self._owners.get(owner_id)


class _FakeBus:
    def __init__(self):
        self.subscriptions = {}

    async def subscribe(self, pattern, callback):
        self.subscriptions[pattern] = callback


HANDS_OFF = AutonomySettings(preset=AutonomyPreset.HANDS_OFF)

MATURE = OwnerProfile(owner_id="own_1", tier=SubscriptionTier.PRO, settings=HANDS_OFF, maturity_level=10)
NEW = OwnerProfile(owner_id="own_2", maturity_level=3)


def _make_scheduler(handler, clock, owners=(MATURE,), tasks=None):
    async def _sleep(seconds):
        pass

    executor = ResilientToolExecutor(ToolCatalog.builtin(), handler, clock=clock, sleep=_sleep, rng=lambda: 0.0)
    graduation = GraduationTracker(clock=clock)
    history = InMemoryHistory(clock=clock)
    sink = MemoryAuditSink()
    audit = AuditLogger(sink)
    pipeline = ToolCallPipeline(
        executor=executor,
        gate=AutonomyGate(graduation),
        graduation=graduation,
        calibrator=ConfidenceCalibrator(history),
        history=history,
        approvals=ApprovalQueue(clock=clock),
        audit=audit,
    )
    scheduler = BackgroundTaskScheduler(
        pipeline,
        owners=_Directory(*owners),
        tasks=tasks,
        audit=audit,
        clock=clock,
    )
    return scheduler, sink


@pytest.fixture
def scheduler(handler, clock):
    return _make_scheduler(handler, clock)[0]


# =========================================================================
# Registry
# =========================================================================


class TestRegistry:

    def test_builtin_tasks_registered(self, scheduler):
        assert len(scheduler.list_tasks()) == len(BUILTIN_TASKS) == 12
        assert len(scheduler.list_tasks(TriggerType.EVENT)) == 2
        assert [t.name for t in scheduler.tasks_for_event("payment_failed")] == ["payment_retry"]

    def test_builtin_definitions(self):
        by_name = {t.name: t for t in BUILTIN_TASKS}
        assert by_name["rent_due_detection"].cron_expression == "0 6 * * *"
        assert by_name["rent_due_detection"].available_from_level == 7
        assert by_name["payment_retry"].event_name == "payment_failed"
        assert by_name["payment_retry"].available_from_level == 7
        assert by_name["maintenance_triage"].available_from_level == 9

    def test_every_cron_task_has_a_next_run(self, scheduler, clock):
        for task in scheduler.list_tasks(TriggerType.CRON):
            assert scheduler.next_run_at(task.name) > clock.now

    def test_invalid_cron_is_rejected(self, scheduler):
        task = BackgroundTaskDefinition(
            name="broken",
            trigger_type=TriggerType.CRON,
            cron_expression="every tuesday",
            tools_used=("get_arrears",),
            default_autonomy=AutonomyLevel.AUTONOMOUS,
        )
        with pytest.raises(ValueError, match="Invalid cron expression"):
            scheduler.register(task)

    def test_event_task_needs_event_name(self, scheduler):
        task = BackgroundTaskDefinition(
            name="broken",
            trigger_type=TriggerType.EVENT,
            tools_used=("get_arrears",),
            default_autonomy=AutonomyLevel.AUTONOMOUS,
        )
        with pytest.raises(ValueError, match="must have an event_name"):
            scheduler.register(task)

    def test_unregister(self, scheduler):
        assert scheduler.unregister("rent_due_detection") is True
        assert scheduler.get("rent_due_detection") is None
        assert scheduler.next_run_at("rent_due_detection") is None
        assert scheduler.unregister("rent_due_detection") is False

    def test_definition_from_dict(self):
        task = BackgroundTaskDefinition.from_dict({
            "name": "weekly_digest",
            "cron_expression": "0 9 * * 1",
            "tools_used": ["get_properties"],
            "default_autonomy": 4,
        })
        assert task.trigger_type == TriggerType.CRON
        assert task.tools_used == ("get_properties",)
        assert task.default_autonomy == AutonomyLevel.AUTONOMOUS


# =========================================================================
# Running tasks
# =========================================================================


class TestRunTask:

    async def test_owner_below_maturity_is_skipped(self, scheduler, handler):
        result = await scheduler.run_task("rent_due_detection", NEW)
        assert result.skipped
        assert result.skip_reason == "Owner maturity level 3 is below required level 7"
        assert result.success is False
        assert handler.calls == []

    async def test_read_only_task_executes(self, scheduler, handler):
        result = await scheduler.run_task("rent_due_detection", MATURE, {"month": "2026-02"})
        assert result.executed == ["get_rent_schedule"]
        assert result.success
        assert handler.calls_for("get_rent_schedule") == [{"month": "2026-02"}]
        _, _, ctx = handler.calls[0]
        assert ctx.interactive is False
        assert ctx.task_name == "rent_due_detection"
        assert ctx.tier == "pro"

    async def test_task_default_caps_autonomy(self, scheduler, handler):
        # arrears_escalation runs at Suggest, so even a read is queued
        result = await scheduler.run_task("arrears_escalation", MATURE)
        assert result.executed == []
        assert len(result.pending_actions) == 3
        assert handler.calls == []
        pending = scheduler.pipeline.approvals.list_pending("own_1")
        assert {a.task_name for a in pending} == {"arrears_escalation"}

    async def test_undeclared_tool_is_refused(self, scheduler, handler):
        async def planner(task, owner, payload):
            return [TaskCall("get_arrears"), TaskCall("terminate_lease", {"tenancy_id": "t1"})]

        scheduler.register(scheduler.get("arrears_detection"), planner=planner)
        result = await scheduler.run_task("arrears_detection", MATURE)

        assert result.executed == ["get_arrears"]
        assert result.errors == ["terminate_lease: not declared by task arrears_detection"]
        assert handler.tool_names == ["get_arrears"]

    async def test_tool_failure_is_recorded(self, scheduler, handler):
        handler.default("get_rent_schedule", {"success": False, "error": "Tenant not found"})
        result = await scheduler.run_task("rent_due_detection", MATURE)
        assert result.executed == []
        assert result.errors == ["get_rent_schedule: Tenant not found"]

    async def test_planner_crash_is_recorded(self, scheduler):
        async def planner(task, owner, payload):
            raise RuntimeError("planner exploded")

        scheduler.register(scheduler.get("rent_due_detection"), planner=planner)
        result = await scheduler.run_task("rent_due_detection", MATURE)
        assert result.errors == ["planner exploded"]
        assert scheduler.status()["running_tasks"] == []

    async def test_unknown_task(self, scheduler):
        with pytest.raises(KeyError):
            await scheduler.run_task("nope", MATURE)

    async def test_run_is_audited(self, handler, clock):
        scheduler, sink = _make_scheduler(handler, clock)
        await scheduler.run_task("rent_due_detection", MATURE)
        records = sink.query(owner_id="own_1", event_type="background_task")
        assert len(records) == 1
        assert records[0].fields["task_name"] == "rent_due_detection"
        assert records[0].fields["success"] is True


# =========================================================================
# Events
# =========================================================================


class TestEvents:

    async def test_handle_event_for_one_owner(self, scheduler, handler):
        results = await scheduler.handle_event("payment_failed", {"payment_id": "pay_1"}, owner_id="own_1")

        assert len(results) == 1
        result = results[0]
        assert result.task_name == "payment_retry"
        assert result.trigger == "event:payment_failed"
        # retry_payment is medium risk, capped at Draft
        assert len(result.pending_actions) == 1
        assert result.executed == ["send_rent_reminder"]
        assert handler.calls_for("send_rent_reminder") == [{"payment_id": "pay_1"}]

    async def test_handle_event_for_every_owner(self, handler, clock):
        scheduler, _ = _make_scheduler(handler, clock, owners=(MATURE, NEW))
        results = await scheduler.handle_event("maintenance_created", {"request_id": "m1"})
        assert sorted(r.owner_id for r in results) == ["own_1", "own_2"]
        skipped = [r for r in results if r.skipped]
        assert [r.owner_id for r in skipped] == ["own_2"]

    async def test_unbound_event(self, scheduler):
        assert await scheduler.handle_event("lease_signed") == []

    async def test_unknown_owner(self, scheduler, handler):
        assert await scheduler.handle_event("payment_failed", owner_id="own_404") == []
        assert handler.calls == []

    async def test_attach_event_bus(self, scheduler, handler):
        bus = _FakeBus()
        await scheduler.attach_event_bus(bus)

        assert sorted(bus.subscriptions) == ["steward:maintenance_created", "steward:payment_failed"]

        callback = bus.subscriptions["steward:payment_failed"]
        await callback(Event(source="steward", event_type="payment_failed", data={"payment_id": "pay_2"}, owner_id="own_1"))
        assert handler.calls_for("send_rent_reminder") == [{"payment_id": "pay_2"}]


# =========================================================================
# Cron and housekeeping
# =========================================================================


class TestRunDue:

    @pytest.fixture
    def rent_task(self):
        return next(t for t in BUILTIN_TASKS if t.name == "rent_due_detection")

    async def test_nothing_due(self, handler, clock, rent_task):
        scheduler, _ = _make_scheduler(handler, clock, tasks=[rent_task])
        assert await scheduler.run_due() == []
        assert handler.calls == []

    async def test_due_task_fires_and_advances(self, handler, clock, rent_task):
        scheduler, _ = _make_scheduler(handler, clock, tasks=[rent_task])
        due_at = scheduler.next_run_at("rent_due_detection")

        clock.now = due_at
        results = await scheduler.run_due()

        assert [r.trigger for r in results] == ["cron"]
        assert handler.tool_names == ["get_rent_schedule"]
        assert scheduler.next_run_at("rent_due_detection") == due_at + 24 * 60 * 60 * 1000

        # Same instant again: already advanced
        assert await scheduler.run_due() == []

    async def test_housekeeping_expires_stale_approvals(self, handler, clock):
        retry = next(t for t in BUILTIN_TASKS if t.name == "payment_retry")
        scheduler, _ = _make_scheduler(handler, clock, tasks=[retry])
        [result] = await scheduler.handle_event("payment_failed", owner_id="own_1")
        [action_id] = result.pending_actions
        approvals = scheduler.pipeline.approvals

        clock.advance(24 * 60 * 60 * 1000 - 1)
        await scheduler.run_due()
        assert approvals.get(action_id).status == PendingActionStatus.PENDING

        clock.advance(1)
        await scheduler.run_due()
        assert approvals.get(action_id).status == PendingActionStatus.EXPIRED

    async def test_status(self, scheduler, clock):
        status = scheduler.status()
        assert status["running"] is False
        assert status["timezone"] == "Australia/Sydney"
        assert status["total_tasks"] == 12
        assert status["cron_tasks"] == 10
        assert status["event_tasks"] == 2
        assert status["next_due_at_ms"] > clock.now

    async def test_start_and_stop(self, scheduler):
        await scheduler.start()
        assert scheduler.status()["running"] is True
        await scheduler.stop()
        assert scheduler.status()["running"] is False
