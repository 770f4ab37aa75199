"""
Steward Workflow Models - Data structures for multi-step tool workflows

A workflow is an ordered list of steps executed strictly in sequence:
- Each step names a tool and how its params are resolved
  (static / from_previous / from_context)
- A step may carry a gate that pauses the instance until an external
  signal arrives (owner approval, inbound webhook, or a wall-clock time)
- A step may declare a compensating tool; on failure completed steps are
  undone in reverse order
- optional steps may fail without halting the workflow; per_item steps
  run once per element of the previous step's collection result
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..resilience.models import ErrorCategory


class WorkflowStatus(str, Enum):
    """Current status of a workflow instance"""
    RUNNING = "running"
    PAUSED = "paused"                          # Waiting at a gate
    FAILED = "failed"                          # Failed; SafetyHalt stops here
    COMPLETED = "completed"
    COMPENSATING = "compensating"              # Undoing completed steps
    FAILED_COMPENSATED = "failed_compensated"
    CANCELLED = "cancelled"                    # Cancelled at a gate, compensated
    EXPIRED = "expired"                        # Resume window lapsed

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({
    WorkflowStatus.COMPLETED,
    WorkflowStatus.FAILED,
    WorkflowStatus.FAILED_COMPENSATED,
    WorkflowStatus.CANCELLED,
    WorkflowStatus.EXPIRED,
})


class ParamMode(str, Enum):
    """How step parameters are resolved at runtime"""
    STATIC = "static"
    FROM_PREVIOUS = "from_previous"
    FROM_CONTEXT = "from_context"


class GateType(str, Enum):
    """Gates that pause a workflow until a condition is met"""
    OWNER_APPROVAL = "owner_approval"
    WEBHOOK_WAIT = "webhook_wait"
    SCHEDULE_WAIT = "schedule_wait"


@dataclass(frozen=True)
class WorkflowStep:
    """
    One step of a workflow definition.

    Example:
        WorkflowStep(
            index=3,
            tool_name="create_work_order",
            param_mode=ParamMode.FROM_PREVIOUS,
            gate=GateType.OWNER_APPROVAL,
            compensation_tool="update_maintenance_status",
            compensation_params={"status": "cancelled"},
        )
    """
    index: int
    tool_name: str
    param_mode: ParamMode = ParamMode.FROM_PREVIOUS
    static_params: Dict[str, Any] = field(default_factory=dict)
    gate: Optional[GateType] = None
    gate_delay_ms: int = 0                    # schedule_wait only
    compensation_tool: Optional[str] = None
    compensation_params: Dict[str, Any] = field(default_factory=dict)
    optional: bool = False
    per_item: bool = False
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "index": self.index,
            "tool_name": self.tool_name,
            "param_mode": self.param_mode.value,
            "description": self.description,
        }
        if self.static_params:
            data["static_params"] = self.static_params
        if self.gate is not None:
            data["gate"] = self.gate.value
        if self.gate_delay_ms:
            data["gate_delay_ms"] = self.gate_delay_ms
        if self.compensation_tool:
            data["compensation_tool"] = self.compensation_tool
        if self.compensation_params:
            data["compensation_params"] = self.compensation_params
        if self.optional:
            data["optional"] = True
        if self.per_item:
            data["per_item"] = True
        return data


@dataclass
class WorkflowDefinition:
    """
    A named, ordered composition of tool steps.

    Attributes:
        name: Unique workflow name
        description: Human-readable description
        steps: Ordered steps
        max_duration_ms: Total running time allowed, gates included
        checkpoint_after_each_step: Persist after every step, not only at gates
        resumable: Whether a paused instance can be resumed
        resume_window_ms: How long a paused instance stays resumable
        available_from_level: Program maturity level that unlocks the workflow
    """
    name: str
    description: str = ""
    steps: List[WorkflowStep] = field(default_factory=list)
    max_duration_ms: int = 30 * 24 * 60 * 60 * 1000
    checkpoint_after_each_step: bool = True
    resumable: bool = True
    resume_window_ms: int = 30 * 24 * 60 * 60 * 1000
    available_from_level: int = 0

    def get_step(self, index: int) -> WorkflowStep:
        return self.steps[index]

    def validate(self) -> List[str]:
        """Validate the definition, returns list of errors"""
        errors = []
        if not self.name:
            errors.append("Workflow must have a name")
        if not self.steps:
            errors.append(f"Workflow {self.name} must define at least one step")
        for position, step in enumerate(self.steps):
            if step.index != position:
                errors.append(
                    f"Step {position} of {self.name} has index {step.index}; indices must be 0..n-1 in order"
                )
            if step.gate == GateType.SCHEDULE_WAIT and step.gate_delay_ms < 0:
                errors.append(f"Step {position} of {self.name} has a negative gate_delay_ms")
            if step.compensation_params and not step.compensation_tool:
                errors.append(f"Step {position} of {self.name} has compensation_params but no compensation_tool")
        if self.max_duration_ms <= 0:
            errors.append(f"Workflow {self.name} needs a positive max_duration_ms")
        if self.resume_window_ms <= 0:
            errors.append(f"Workflow {self.name} needs a positive resume_window_ms")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "steps": [s.to_dict() for s in self.steps],
            "max_duration_ms": self.max_duration_ms,
            "checkpoint_after_each_step": self.checkpoint_after_each_step,
            "resumable": self.resumable,
            "resume_window_ms": self.resume_window_ms,
            "available_from_level": self.available_from_level,
        }


@dataclass
class GateSignal:
    """
    External signal that satisfies a gate.

    - owner_approval: ``decision`` is approve / reject / modify
      (``modified_params`` overlay the step params on modify)
    - webhook_wait: ``payload`` is merged into the accumulated context
    - schedule_wait: ``at_ms`` is the firing time (defaults to now)
    """
    gate: GateType
    decision: Optional[str] = None
    modified_params: Optional[Dict[str, Any]] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    at_ms: Optional[int] = None

    @classmethod
    def approval(cls, decision: str, modified_params: Optional[Dict[str, Any]] = None) -> "GateSignal":
        return cls(gate=GateType.OWNER_APPROVAL, decision=decision, modified_params=modified_params)

    @classmethod
    def webhook(cls, payload: Optional[Dict[str, Any]] = None) -> "GateSignal":
        return cls(gate=GateType.WEBHOOK_WAIT, payload=dict(payload or {}))

    @classmethod
    def schedule(cls, at_ms: Optional[int] = None) -> "GateSignal":
        return cls(gate=GateType.SCHEDULE_WAIT, at_ms=at_ms)


@dataclass
class StepOutcome:
    """What happened to one executed step"""
    index: int
    tool_name: str
    success: bool
    skipped: bool = False
    data: Any = None
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None
    item_count: Optional[int] = None
    failed_items: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "tool_name": self.tool_name,
            "success": self.success,
            "skipped": self.skipped,
            "error": self.error,
            "error_category": self.error_category.value if self.error_category else None,
            "item_count": self.item_count,
            "failed_items": self.failed_items,
        }


@dataclass
class CompensationOutcome:
    """Result of running one compensating action"""
    step_index: int
    tool_name: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_index": self.step_index,
            "tool_name": self.tool_name,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class WorkflowRunResult:
    """Where a workflow instance stands after start / resume / cancel"""
    workflow_id: str
    workflow_name: str
    status: WorkflowStatus
    step_index: int
    pending_gate: Optional[GateType] = None
    pending_action_id: Optional[str] = None
    resume_at_ms: Optional[int] = None
    steps: List[StepOutcome] = field(default_factory=list)
    compensations: List[CompensationOutcome] = field(default_factory=list)
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None
    safety_halt: bool = False

    @property
    def paused(self) -> bool:
        return self.status == WorkflowStatus.PAUSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "status": self.status.value,
            "step_index": self.step_index,
            "pending_gate": self.pending_gate.value if self.pending_gate else None,
            "pending_action_id": self.pending_action_id,
            "resume_at_ms": self.resume_at_ms,
            "steps": [s.to_dict() for s in self.steps],
            "compensations": [c.to_dict() for c in self.compensations],
            "error": self.error,
            "error_category": self.error_category.value if self.error_category else None,
            "safety_halt": self.safety_halt,
        }
