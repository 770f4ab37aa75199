"""
Checkpoint storage interface and in-memory backend.

Backends persist the serialized form, so every ``get`` returns a fresh
object and runs the schema-version check.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..workflow.models import WorkflowStatus
from .models import WorkflowCheckpoint

logger = logging.getLogger(__name__)


class CheckpointStorage(ABC):
    """Abstract base for workflow checkpoint stores"""

    @abstractmethod
    async def save(self, checkpoint: WorkflowCheckpoint) -> str:
        """Insert or replace a checkpoint; returns its workflow id"""
        pass

    @abstractmethod
    async def save_if_unchanged(
        self,
        checkpoint: WorkflowCheckpoint,
        expected_status: WorkflowStatus,
        expected_updated_at_ms: int,
    ) -> bool:
        """
        Replace a stored checkpoint only if it still has the expected status
        and update time. Returns False when another writer got there first.
        """
        pass

    @abstractmethod
    async def get(self, workflow_id: str) -> Optional[WorkflowCheckpoint]:
        """
        Load a checkpoint.

        Raises:
            CheckpointVersionError: If it was written under another schema version
        """
        pass

    @abstractmethod
    async def delete(self, workflow_id: str) -> bool:
        pass

    @abstractmethod
    async def list_by_owner(
        self,
        owner_id: str,
        status: Optional[WorkflowStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowCheckpoint]:
        """Most recently updated first"""
        pass

    @abstractmethod
    async def list_by_status(self, status: WorkflowStatus, limit: int = 100) -> List[WorkflowCheckpoint]:
        pass


class MemoryStorage(CheckpointStorage):
    """In-memory checkpoint storage for tests and local development."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def save(self, checkpoint: WorkflowCheckpoint) -> str:
        self._data[checkpoint.workflow_id] = checkpoint.to_json()
        return checkpoint.workflow_id

    async def save_if_unchanged(
        self,
        checkpoint: WorkflowCheckpoint,
        expected_status: WorkflowStatus,
        expected_updated_at_ms: int,
    ) -> bool:
        raw = self._data.get(checkpoint.workflow_id)
        current = WorkflowCheckpoint.from_json(raw) if raw is not None else None
        if (
            current is None
            or current.status != expected_status
            or current.updated_at_ms != expected_updated_at_ms
        ):
            return False
        self._data[checkpoint.workflow_id] = checkpoint.to_json()
        return True

    async def get(self, workflow_id: str) -> Optional[WorkflowCheckpoint]:
        raw = self._data.get(workflow_id)
        if raw is None:
            return None
        return WorkflowCheckpoint.from_json(raw)

    async def delete(self, workflow_id: str) -> bool:
        return self._data.pop(workflow_id, None) is not None

    async def list_by_owner(
        self,
        owner_id: str,
        status: Optional[WorkflowStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowCheckpoint]:
        checkpoints = [
            c for c in self._all()
            if c.owner_id == owner_id and (status is None or c.status == status)
        ]
        return checkpoints[:limit]

    async def list_by_status(self, status: WorkflowStatus, limit: int = 100) -> List[WorkflowCheckpoint]:
        return [c for c in self._all() if c.status == status][:limit]

    def _all(self) -> List[WorkflowCheckpoint]:
        checkpoints = [WorkflowCheckpoint.from_json(raw) for raw in self._data.values()]
        checkpoints.sort(key=lambda c: c.updated_at_ms, reverse=True)
        return checkpoints

    def __len__(self) -> int:
        return len(self._data)
