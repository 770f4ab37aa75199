"""
Steward Checkpoint Models - Persisted progress of a workflow instance

This module defines:
- WorkflowCheckpoint: Versioned state snapshot of one workflow instance
- CompensationAction: One entry on the rollback stack
- CheckpointVersionError / CheckpointExpiredError

Checkpoints carry ``schema_version``; loading a checkpoint written under
any other version fails loudly instead of guessing at its fields.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..workflow.models import GateType, WorkflowStatus

CHECKPOINT_SCHEMA_VERSION = 1


class CheckpointVersionError(Exception):
    """Raised when a checkpoint was written under an unsupported schema version"""

    def __init__(self, workflow_id: str, version: Any):
        self.workflow_id = workflow_id
        self.version = version
        super().__init__(
            f"Checkpoint {workflow_id} has schema version {version!r}; "
            f"this engine reads version {CHECKPOINT_SCHEMA_VERSION}"
        )


class CheckpointExpiredError(Exception):
    """Raised when resuming a checkpoint past its resume window"""

    def __init__(self, workflow_id: str, expires_at_ms: int):
        self.workflow_id = workflow_id
        self.expires_at_ms = expires_at_ms
        super().__init__(f"Workflow {workflow_id} expired at {expires_at_ms}")


@dataclass
class CompensationAction:
    """Undo action pushed by a completed step"""
    step_index: int
    tool_name: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_index": self.step_index,
            "tool_name": self.tool_name,
            "params": self.params,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompensationAction":
        return cls(
            step_index=data["step_index"],
            tool_name=data["tool_name"],
            params=dict(data.get("params") or {}),
        )


@dataclass
class WorkflowCheckpoint:
    """
    State snapshot of one workflow instance.

    ``compensation_stack`` is ordered most-recent-first and never holds more
    entries than ``completed_steps``. ``expires_at_ms`` is the last update
    plus the definition's resume window.
    """
    # Identity
    workflow_id: str
    workflow_name: str
    owner_id: str

    # Progress
    status: WorkflowStatus = WorkflowStatus.RUNNING
    step_index: int = 0
    step_result: Any = None
    completed_steps: List[int] = field(default_factory=list)
    skipped_steps: List[int] = field(default_factory=list)

    # Gate
    pending_gate: Optional[GateType] = None
    pending_action_id: Optional[str] = None
    gate_resume_at_ms: Optional[int] = None

    # Rollback and context
    compensation_stack: List[CompensationAction] = field(default_factory=list)
    accumulated_context: Dict[str, Any] = field(default_factory=dict)
    caller: Dict[str, Any] = field(default_factory=dict)

    # Timing
    started_at_ms: int = 0
    updated_at_ms: int = 0
    expires_at_ms: int = 0

    error: Optional[str] = None
    schema_version: int = CHECKPOINT_SCHEMA_VERSION

    def push_compensation(self, action: CompensationAction) -> None:
        self.compensation_stack.insert(0, action)

    def is_expired(self, at_ms: int) -> bool:
        return at_ms >= self.expires_at_ms

    def to_dict(self) -> Dict[str, Any]:
        """Serialize checkpoint to dictionary"""
        return {
            "schema_version": self.schema_version,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "owner_id": self.owner_id,
            "status": self.status.value,
            "step_index": self.step_index,
            "step_result": self.step_result,
            "completed_steps": self.completed_steps,
            "skipped_steps": self.skipped_steps,
            "pending_gate": self.pending_gate.value if self.pending_gate else None,
            "pending_action_id": self.pending_action_id,
            "gate_resume_at_ms": self.gate_resume_at_ms,
            "compensation_stack": [c.to_dict() for c in self.compensation_stack],
            "accumulated_context": self.accumulated_context,
            "caller": self.caller,
            "started_at_ms": self.started_at_ms,
            "updated_at_ms": self.updated_at_ms,
            "expires_at_ms": self.expires_at_ms,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowCheckpoint":
        """
        Deserialize checkpoint from dictionary.

        Raises:
            CheckpointVersionError: If ``schema_version`` is missing or unsupported
        """
        version = data.get("schema_version")
        if version != CHECKPOINT_SCHEMA_VERSION:
            raise CheckpointVersionError(data.get("workflow_id", "<unknown>"), version)
        gate = data.get("pending_gate")
        return cls(
            schema_version=version,
            workflow_id=data["workflow_id"],
            workflow_name=data["workflow_name"],
            owner_id=data["owner_id"],
            status=WorkflowStatus(data["status"]),
            step_index=data.get("step_index", 0),
            step_result=data.get("step_result"),
            completed_steps=list(data.get("completed_steps") or []),
            skipped_steps=list(data.get("skipped_steps") or []),
            pending_gate=GateType(gate) if gate else None,
            pending_action_id=data.get("pending_action_id"),
            gate_resume_at_ms=data.get("gate_resume_at_ms"),
            compensation_stack=[
                CompensationAction.from_dict(c) for c in data.get("compensation_stack") or []
            ],
            accumulated_context=dict(data.get("accumulated_context") or {}),
            caller=dict(data.get("caller") or {}),
            started_at_ms=data.get("started_at_ms", 0),
            updated_at_ms=data.get("updated_at_ms", 0),
            expires_at_ms=data.get("expires_at_ms", 0),
            error=data.get("error"),
        )

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "WorkflowCheckpoint":
        """Deserialize from JSON string"""
        return cls.from_dict(json.loads(json_str))
