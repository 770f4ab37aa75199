"""Tests for steward.app.Steward"""

import pytest

from steward import Steward
from steward.autonomy.models import OwnerProfile, SubscriptionTier
from steward.config import EngineConfig
from steward.orchestrator import ApprovalError, CallStatus, PendingActionStatus
from steward.tools.models import CallerContext
from steward.workflow import GateType, WorkflowStateError, WorkflowStatus


LISTING_WORKFLOW = """
workflows:
  wf_quick_listing:
    description: Draft a listing and publish it once approved
    steps:
      - tool: get_property
        params: from_context
      - tool: create_listing
        gate: owner_approval
        description: Publish the listing
        compensation: pause_listing
"""


class _Directory:
    def __init__(self, *owners):
        self._owners = {o.owner_id: o for o in owners}

    async def list_owners(self):
        return list(self._owners.values())

    async def get_owner(self, owner_id):
        return self._owners.get(owner_id)


@pytest.fixture
def ctx():
    return CallerContext(owner_id="own_1", tier="pro")


@pytest.fixture
def app(handler, clock, tmp_path):
    (tmp_path / "listing.yaml").write_text(LISTING_WORKFLOW)
    config = EngineConfig(workflows_path=str(tmp_path), graduation_threshold=2)
    owners = _Directory(OwnerProfile(owner_id="own_1", tier=SubscriptionTier.PRO, maturity_level=10))
    return Steward(config, handler=handler, owners=owners, clock=clock)


class TestConstruction:

    def test_requires_a_handler(self):
        with pytest.raises(ValueError, match="tool handler"):
            Steward(EngineConfig())

    def test_loads_config_file(self, handler, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("autonomy:\n  graduation_threshold: 4\n")
        app = Steward(str(path), handler=handler)
        assert app.config.graduation_threshold == 4
        assert app.graduation.threshold == 4

    def test_registers_builtin_and_configured_workflows(self, app):
        assert "workflow_find_tenant" in app.loader
        assert "wf_quick_listing" in app.loader
        assert len(app.loader) == 6


class TestToolCalls:

    async def test_submit_initializes_lazily(self, app, handler, ctx):
        outcome = await app.submit_tool_call("get_arrears", {"property_id": "p1"}, ctx)
        assert outcome.status == CallStatus.EXECUTED
        assert handler.tool_names == ["get_arrears"]
        await app.close()

    async def test_approve_plain_action(self, app, handler, ctx):
        outcome = await app.submit_tool_call("send_rent_reminder", {"tenant_id": "t1"}, ctx)
        assert outcome.status == CallStatus.PENDING_APPROVAL
        assert app.list_pending("own_1") == [outcome.pending_action]

        resolution = await app.resolve_pending(outcome.pending_action.id, "approve")

        assert resolution.call.status == CallStatus.EXECUTED
        assert resolution.workflow is None
        assert handler.tool_names == ["send_rent_reminder"]

    async def test_configured_graduation_threshold(self, app, handler, ctx):
        for i in range(2):
            outcome = await app.submit_tool_call("send_rent_reminder", {"tenant_id": f"t{i}"}, ctx)
            await app.resolve_pending(outcome.pending_action.id, "approve")

        outcome = await app.submit_tool_call("send_rent_reminder", {"tenant_id": "t9"}, ctx)
        assert outcome.status == CallStatus.EXECUTED

    async def test_unknown_pending_action(self, app):
        with pytest.raises(ApprovalError):
            await app.resolve_pending("pa_missing", "approve")


class TestWorkflowApprovals:

    async def test_approval_resumes_workflow(self, app, handler, ctx):
        started = await app.start_workflow("wf_quick_listing", ctx, {"property_id": "p1"})
        assert started.status == WorkflowStatus.PAUSED
        assert started.pending_gate == GateType.OWNER_APPROVAL
        assert handler.tool_names == ["get_property"]

        [action] = app.list_pending("own_1")
        assert action.workflow_id == started.workflow_id

        resolution = await app.resolve_pending(action.id, "approve")

        assert resolution.call.status == CallStatus.PENDING_APPROVAL
        assert resolution.workflow.status == WorkflowStatus.COMPLETED
        assert handler.tool_names == ["get_property", "create_listing"]

    async def test_rejection_cancels_workflow(self, app, handler, ctx):
        started = await app.start_workflow("wf_quick_listing", ctx, {"property_id": "p1"})

        resolution = await app.resolve_pending(started.pending_action_id, "reject")

        assert resolution.call.status == CallStatus.REJECTED
        assert resolution.workflow.status == WorkflowStatus.CANCELLED
        assert "create_listing" not in handler.tool_names

    async def test_gate_can_be_approved_after_a_day(self, app, handler, clock, ctx):
        started = await app.start_workflow("wf_quick_listing", ctx, {"property_id": "p1"})
        clock.advance(25 * 60 * 60 * 1000)

        resolution = await app.resolve_pending(started.pending_action_id, "approve")

        assert resolution.workflow.status == WorkflowStatus.COMPLETED
        assert handler.tool_names == ["get_property", "create_listing"]

    async def test_failed_resume_leaves_the_action_pending(self, app, handler, ctx):
        started = await app.start_workflow("wf_quick_listing", ctx, {"property_id": "p1"})
        storage = app.workflows.storage
        checkpoint = await storage.get(started.workflow_id)
        checkpoint.status = WorkflowStatus.RUNNING
        await storage.save(checkpoint)

        with pytest.raises(WorkflowStateError):
            await app.resolve_pending(started.pending_action_id, "approve")

        action = app.approvals.get(started.pending_action_id)
        assert action.status == PendingActionStatus.PENDING
        assert app.list_pending("own_1") == [action]
        assert app.graduation.peek("own_1", "create_listing") is None

        checkpoint.status = WorkflowStatus.PAUSED
        await storage.save(checkpoint)
        resolution = await app.resolve_pending(started.pending_action_id, "approve")
        assert resolution.workflow.status == WorkflowStatus.COMPLETED
        assert action.status == PendingActionStatus.APPROVED

    async def test_cancel_workflow(self, app, ctx):
        started = await app.start_workflow("wf_quick_listing", ctx, {"property_id": "p1"})
        cancelled = await app.cancel_workflow(started.workflow_id)
        assert cancelled.status == WorkflowStatus.CANCELLED


class TestBackgroundTasks:

    async def test_handle_event(self, app, handler):
        results = await app.handle_event("maintenance_created", {"request_id": "m1"}, owner_id="own_1")
        assert [r.task_name for r in results] == ["maintenance_triage"]
        assert results[0].trigger == "event:maintenance_created"

    async def test_run_task(self, app, handler):
        owner = OwnerProfile(owner_id="own_1", maturity_level=7)
        result = await app.run_task("rent_due_detection", owner, {"month": "2026-02"})
        assert result.executed == ["get_rent_schedule"]


class TestContext:

    def test_compact_context_passes_short_history_through(self, app):
        messages = [{"role": "user", "content": "hello"}]
        assert app.compact_context(messages) == messages
