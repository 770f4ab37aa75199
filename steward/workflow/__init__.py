"""
Steward Workflow Module - Checkpointed multi-step tool workflows

Workflows are ordered steps executed strictly in sequence through the
resilient executor. Gates pause an instance until an owner approval,
webhook or scheduled time arrives; completed steps are compensated in
reverse order when a later step fails.

Example usage:
    from steward.workflow import WorkflowEngine, WorkflowLoader, GateSignal, BUILTIN_WORKFLOWS

    loader = WorkflowLoader(catalog=catalog)
    loader.register_all(BUILTIN_WORKFLOWS)
    engine = WorkflowEngine(executor, loader=loader)

    result = await engine.start("workflow_arrears_escalation", ctx, {"tenancy_id": "t1"})
    result = await engine.resume(result.workflow_id, GateSignal.schedule())
"""

from .builtin import BUILTIN_WORKFLOWS
from .engine import WorkflowEngine, WorkflowStateError
from .loader import WorkflowLoadError, WorkflowLoader, WorkflowValidationError
from .models import (
    CompensationOutcome,
    GateSignal,
    GateType,
    ParamMode,
    StepOutcome,
    WorkflowDefinition,
    WorkflowRunResult,
    WorkflowStatus,
    WorkflowStep,
)

__all__ = [
    "BUILTIN_WORKFLOWS",
    "CompensationOutcome",
    "GateSignal",
    "GateType",
    "ParamMode",
    "StepOutcome",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowLoadError",
    "WorkflowLoader",
    "WorkflowRunResult",
    "WorkflowStateError",
    "WorkflowStatus",
    "WorkflowStep",
    "WorkflowValidationError",
]
