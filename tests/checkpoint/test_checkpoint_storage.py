"""Tests for steward.checkpoint.storage.MemoryStorage"""

import pytest

from steward.checkpoint.models import CheckpointVersionError, WorkflowCheckpoint
from steward.checkpoint.storage import MemoryStorage
from steward.workflow.models import WorkflowStatus


def _make_checkpoint(
    workflow_id="wf_001",
    owner_id="own_1",
    status=WorkflowStatus.RUNNING,
    updated_at_ms=1_000,
):
    return WorkflowCheckpoint(
        workflow_id=workflow_id,
        workflow_name="workflow_find_tenant",
        owner_id=owner_id,
        status=status,
        updated_at_ms=updated_at_ms,
        expires_at_ms=updated_at_ms + 60_000,
    )


@pytest.fixture
def storage():
    return MemoryStorage()


class TestSaveAndGet:

    async def test_save_returns_id(self, storage):
        assert await storage.save(_make_checkpoint()) == "wf_001"

    async def test_get_returns_saved_checkpoint(self, storage):
        await storage.save(_make_checkpoint())
        cp = await storage.get("wf_001")
        assert cp.workflow_name == "workflow_find_tenant"
        assert cp.owner_id == "own_1"

    async def test_get_nonexistent_returns_none(self, storage):
        assert await storage.get("missing") is None

    async def test_get_returns_a_fresh_object(self, storage):
        original = _make_checkpoint()
        await storage.save(original)

        loaded = await storage.get("wf_001")
        loaded.completed_steps.append(0)
        original.step_index = 5

        again = await storage.get("wf_001")
        assert again.completed_steps == []
        assert again.step_index == 0

    async def test_save_replaces(self, storage):
        await storage.save(_make_checkpoint())
        await storage.save(_make_checkpoint(status=WorkflowStatus.PAUSED, updated_at_ms=2_000))
        cp = await storage.get("wf_001")
        assert cp.status == WorkflowStatus.PAUSED
        assert len(storage) == 1

    async def test_get_checks_schema_version(self, storage):
        cp = _make_checkpoint()
        cp.schema_version = 99
        await storage.save(cp)
        with pytest.raises(CheckpointVersionError):
            await storage.get("wf_001")


class TestConditionalSave:

    async def test_replaces_when_unchanged(self, storage):
        await storage.save(_make_checkpoint(status=WorkflowStatus.PAUSED))
        claimed = _make_checkpoint(status=WorkflowStatus.RUNNING, updated_at_ms=1_500)

        assert await storage.save_if_unchanged(claimed, WorkflowStatus.PAUSED, 1_000) is True
        assert (await storage.get("wf_001")).status == WorkflowStatus.RUNNING

    async def test_refuses_when_status_moved(self, storage):
        await storage.save(_make_checkpoint(status=WorkflowStatus.RUNNING))
        stale = _make_checkpoint(status=WorkflowStatus.RUNNING, updated_at_ms=1_500)

        assert await storage.save_if_unchanged(stale, WorkflowStatus.PAUSED, 1_000) is False
        assert (await storage.get("wf_001")).updated_at_ms == 1_000

    async def test_refuses_when_rewritten_since_read(self, storage):
        await storage.save(_make_checkpoint(status=WorkflowStatus.PAUSED, updated_at_ms=2_000))
        stale = _make_checkpoint(status=WorkflowStatus.RUNNING, updated_at_ms=2_500)

        assert await storage.save_if_unchanged(stale, WorkflowStatus.PAUSED, 1_000) is False

    async def test_refuses_missing_checkpoint(self, storage):
        assert await storage.save_if_unchanged(_make_checkpoint(), WorkflowStatus.PAUSED, 1_000) is False
        assert len(storage) == 0


class TestDelete:

    async def test_delete_existing(self, storage):
        await storage.save(_make_checkpoint())
        assert await storage.delete("wf_001") is True
        assert await storage.get("wf_001") is None

    async def test_delete_missing(self, storage):
        assert await storage.delete("wf_001") is False


class TestListing:

    @pytest.fixture
    async def populated(self, storage):
        await storage.save(_make_checkpoint("wf_a", updated_at_ms=1_000))
        await storage.save(_make_checkpoint("wf_b", status=WorkflowStatus.PAUSED, updated_at_ms=3_000))
        await storage.save(_make_checkpoint("wf_c", status=WorkflowStatus.PAUSED, updated_at_ms=2_000))
        await storage.save(_make_checkpoint("wf_d", owner_id="own_2", status=WorkflowStatus.PAUSED, updated_at_ms=4_000))
        return storage

    async def test_list_by_owner_most_recent_first(self, populated):
        result = await populated.list_by_owner("own_1")
        assert [c.workflow_id for c in result] == ["wf_b", "wf_c", "wf_a"]

    async def test_list_by_owner_with_status(self, populated):
        result = await populated.list_by_owner("own_1", status=WorkflowStatus.PAUSED)
        assert [c.workflow_id for c in result] == ["wf_b", "wf_c"]

    async def test_list_by_owner_limit(self, populated):
        result = await populated.list_by_owner("own_1", limit=1)
        assert [c.workflow_id for c in result] == ["wf_b"]

    async def test_list_by_status_spans_owners(self, populated):
        result = await populated.list_by_status(WorkflowStatus.PAUSED)
        assert [c.workflow_id for c in result] == ["wf_d", "wf_b", "wf_c"]

    async def test_list_unknown_owner(self, populated):
        assert await populated.list_by_owner("own_9") == []
