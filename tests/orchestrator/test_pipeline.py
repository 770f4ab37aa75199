"""Tests for steward.orchestrator.pipeline.ToolCallPipeline

Tests cover:
- Tier denial and gate decisions
- Low-confidence escalation
- Approval, modification and rejection of queued actions
- Execution history and graduation bookkeeping
"""

import pytest

from steward.autonomy import AutonomyGate, AutonomyPreset, AutonomySettings, GraduationTracker
from steward.autonomy.models import FeedbackDecision
from steward.confidence import ConfidenceCalibrator, InMemoryHistory, OwnerRule
from steward.orchestrator import (
    ApprovalDecision,
    ApprovalError,
    ApprovalQueue,
    AuditLogger,
    CallStatus,
    MemoryAuditSink,
    PendingActionStatus,
    ToolCallPipeline,
)
from steward.resilience.executor import ResilientToolExecutor
from steward.resilience.models import ErrorCategory
from steward.tools.catalog import ToolCatalog
from steward.tools.models import AutonomyLevel, CallerContext


class _RecordingChannel:
    def __init__(self, fail=False):
        self.notified = []
        self.fail = fail

    async def notify(self, action):
        self.notified.append(action)
        if self.fail:
            raise ConnectionError("push gateway down")


def _make_pipeline(handler, clock, channel=None):
    async def _sleep(seconds):
        pass

    executor = ResilientToolExecutor(ToolCatalog.builtin(), handler, clock=clock, sleep=_sleep, rng=lambda: 0.0)
    graduation = GraduationTracker(clock=clock)
    history = InMemoryHistory(clock=clock)
    sink = MemoryAuditSink()
    pipeline = ToolCallPipeline(
        executor=executor,
        gate=AutonomyGate(graduation),
        graduation=graduation,
        calibrator=ConfidenceCalibrator(history),
        history=history,
        approvals=ApprovalQueue(clock=clock),
        channel=channel,
        audit=AuditLogger(sink),
    )
    return pipeline, sink


@pytest.fixture
def channel():
    return _RecordingChannel()


@pytest.fixture
def pipeline(handler, clock, channel):
    return _make_pipeline(handler, clock, channel)[0]


@pytest.fixture
def ctx():
    return CallerContext(owner_id="own_1", tier="starter")


BALANCED = AutonomySettings()
HANDS_OFF = AutonomySettings(preset=AutonomyPreset.HANDS_OFF)


# =========================================================================
# Submit
# =========================================================================


class TestSubmit:

    async def test_query_executes_without_calibration(self, pipeline, handler, ctx):
        handler.default("get_arrears", {"success": True, "data": {"amount": 300}})
        outcome = await pipeline.submit("get_arrears", {"property_id": "p1"}, ctx, BALANCED)
        assert outcome.status == CallStatus.EXECUTED
        assert outcome.success
        assert outcome.result.data == {"amount": 300}
        assert outcome.confidence is None
        assert outcome.resolution.level == AutonomyLevel.AUTONOMOUS

    async def test_action_below_auto_execute_is_queued(self, pipeline, handler, channel, ctx):
        outcome = await pipeline.submit("send_rent_reminder", {"tenant_id": "t1"}, ctx, BALANCED)
        assert outcome.status == CallStatus.PENDING_APPROVAL
        assert outcome.pending_action.reason == "Autonomy L2 (Draft) is below auto-execute"
        assert outcome.pending_action.confidence == pytest.approx(0.74)
        assert outcome.confidence.composite == pytest.approx(0.74)
        assert channel.notified == [outcome.pending_action]
        assert handler.calls == []

    async def test_hands_off_action_executes(self, pipeline, handler, ctx):
        outcome = await pipeline.submit("send_rent_reminder", {"tenant_id": "t1"}, ctx, HANDS_OFF)
        assert outcome.status == CallStatus.EXECUTED
        assert handler.calls_for("send_rent_reminder") == [{"tenant_id": "t1"}]

    async def test_tier_denial(self, pipeline, handler, ctx):
        outcome = await pipeline.submit("syndicate_listing_domain", {"listing_id": "l1"}, ctx, HANDS_OFF)
        assert outcome.status == CallStatus.DENIED
        assert "not available on the starter plan" in outcome.error
        assert handler.calls == []

    async def test_unknown_tool_reports_logic_failure(self, pipeline, ctx):
        outcome = await pipeline.submit("launch_rocket", {}, ctx)
        assert outcome.status == CallStatus.EXECUTED
        assert outcome.success is False
        assert outcome.result.error_category == ErrorCategory.PERMANENT_LOGIC
        assert outcome.error == "Unknown tool: launch_rocket"

    async def test_hard_blocked_tool_is_queued(self, pipeline, ctx):
        outcome = await pipeline.submit("terminate_lease", {"tenancy_id": "t1"}, ctx, HANDS_OFF)
        assert outcome.status == CallStatus.PENDING_APPROVAL
        assert outcome.pending_action.autonomy_level == 0

    async def test_background_cap_forces_approval(self, pipeline, handler):
        ctx = CallerContext.for_background_task("own_1", "starter", "arrears_detection", AutonomyLevel.DRAFT)
        outcome = await pipeline.submit("send_rent_reminder", {"tenant_id": "t1"}, ctx, HANDS_OFF)
        assert outcome.status == CallStatus.PENDING_APPROVAL
        assert outcome.pending_action.task_name == "arrears_detection"
        assert handler.calls == []

    async def test_channel_failure_keeps_action_queued(self, handler, clock, ctx):
        channel = _RecordingChannel(fail=True)
        pipeline, _ = _make_pipeline(handler, clock, channel)
        outcome = await pipeline.submit("send_rent_reminder", {"tenant_id": "t1"}, ctx, BALANCED)
        assert outcome.status == CallStatus.PENDING_APPROVAL
        assert pipeline.approvals.list_pending("own_1") == [outcome.pending_action]

    async def test_audit_trail(self, handler, clock, ctx):
        pipeline, sink = _make_pipeline(handler, clock)
        await pipeline.submit("send_rent_reminder", {"tenant_id": "t1"}, ctx, BALANCED)
        event_types = [r.event_type for r in sink.query(owner_id="own_1")]
        assert event_types == ["autonomy_decision", "confidence", "pending_action"]


class TestLowConfidence:

    async def _poison_history(self, pipeline, tool_name):
        history = pipeline.history
        for _ in range(3):
            await history.record_execution("own_1", tool_name, False, 100)
            await history.record_outcome("own_1", tool_name, False)
        for _ in range(2):
            await history.record_decision("own_1", tool_name, FeedbackDecision.REJECTED)
        history.add_rule(OwnerRule(id="r1", owner_id="own_1", category="generate", confidence=0.1))

    async def test_low_confidence_drops_a_level_and_escalates(self, pipeline, handler, ctx):
        await self._poison_history(pipeline, "draft_message")

        outcome = await pipeline.submit("draft_message", {"tenant_id": "t1"}, ctx, BALANCED)

        assert outcome.resolution.level == AutonomyLevel.EXECUTE
        assert outcome.resolution.requires_approval is False
        assert outcome.status == CallStatus.PENDING_APPROVAL
        assert outcome.pending_action.autonomy_level == 2
        assert outcome.pending_action.reason.startswith("Low confidence (0.2")
        assert handler.calls == []

    async def test_healthy_generate_call_executes(self, pipeline, handler, ctx):
        outcome = await pipeline.submit("draft_message", {"tenant_id": "t1"}, ctx, BALANCED)
        assert outcome.status == CallStatus.EXECUTED
        assert outcome.confidence.composite == pytest.approx(0.73)


# =========================================================================
# Owner decisions
# =========================================================================


class TestResolvePending:

    async def _queue(self, pipeline, ctx, **params):
        outcome = await pipeline.submit("send_rent_reminder", params or {"tenant_id": "t1"}, ctx, BALANCED)
        return outcome.pending_action

    async def test_approve_executes_and_records(self, pipeline, handler, ctx):
        action = await self._queue(pipeline, ctx)

        outcome = await pipeline.resolve_pending(action.id, ApprovalDecision.APPROVE)

        assert outcome.status == CallStatus.EXECUTED
        assert outcome.success
        assert handler.calls_for("send_rent_reminder") == [{"tenant_id": "t1"}]
        record = pipeline.graduation.peek("own_1", "send_rent_reminder")
        assert record.consecutive_approvals == 1
        decisions = await pipeline.history.get_recent_decisions("own_1", "send_rent_reminder", 5)
        assert decisions == [FeedbackDecision.APPROVED]
        stats = await pipeline.history.get_tool_stats("own_1", "send_rent_reminder")
        assert stats.total_executions == 1

    async def test_modify_executes_with_edits(self, pipeline, handler, ctx):
        action = await self._queue(pipeline, ctx, tenant_id="t1", tone="firm")

        outcome = await pipeline.resolve_pending(action.id, "modify", {"tone": "friendly"})

        assert outcome.status == CallStatus.EXECUTED
        assert handler.calls_for("send_rent_reminder") == [{"tenant_id": "t1", "tone": "friendly"}]
        assert pipeline.graduation.peek("own_1", "send_rent_reminder").total_corrections == 1

    async def test_reject_does_not_execute(self, pipeline, handler, ctx):
        action = await self._queue(pipeline, ctx)

        outcome = await pipeline.resolve_pending(action.id, ApprovalDecision.REJECT)

        assert outcome.status == CallStatus.REJECTED
        assert outcome.pending_action.status == PendingActionStatus.REJECTED
        assert handler.calls == []
        assert pipeline.graduation.peek("own_1", "send_rent_reminder").total_rejections == 1

    async def test_approved_action_keeps_caller_context(self, pipeline, handler):
        ctx = CallerContext(owner_id="own_1", tier="pro", intent_hash="abc")
        action = await self._queue(pipeline, ctx)
        await pipeline.resolve_pending(action.id, ApprovalDecision.APPROVE)
        _, _, executed_ctx = handler.calls[0]
        assert executed_ctx.tier == "pro"
        assert executed_ctx.intent_hash == "abc"

    async def test_unknown_action_raises(self, pipeline):
        with pytest.raises(ApprovalError):
            await pipeline.resolve_pending("pa_missing", ApprovalDecision.APPROVE)

    async def test_ten_approvals_graduate_the_tool(self, pipeline, handler, ctx):
        for i in range(10):
            action = await self._queue(pipeline, ctx, tenant_id=f"t{i}")
            await pipeline.resolve_pending(action.id, ApprovalDecision.APPROVE)

        outcome = await pipeline.submit("send_rent_reminder", {"tenant_id": "t99"}, ctx, BALANCED)

        assert outcome.status == CallStatus.EXECUTED
        assert outcome.resolution.level == AutonomyLevel.EXECUTE
        assert outcome.resolution.source.value == "graduated"
