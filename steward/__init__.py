"""
Steward - Agent orchestration engine for autonomous property management

Steward decides how much of a tool call an agent may do on its own and
makes the calls it does make survive a messy outside world.

Key Features:
- Autonomy gate: risk ceilings, owner presets, tier limits and graduation
- Confidence calibration from execution history and owner feedback
- Resilient tool execution: retries, circuit breakers, fallbacks, idempotency
- Checkpointed multi-step workflows with gates and compensation
- Context window compaction for long conversations
- Background tasks on cron schedules and named events

Quick Start:
    from steward import Steward, CallerContext, CallStatus

    app = Steward(handler=my_tool_handler)
    await app.initialize()

    outcome = await app.submit_tool_call(
        "send_rent_reminder", {"tenant_id": "t1"}, CallerContext(owner_id="own_1")
    )
    if outcome.status == CallStatus.PENDING_APPROVAL:
        print(outcome.pending_action.preview)
"""

__version__ = "0.1.0"

# Tools
from .tools import (
    AutonomyLevel,
    CallerContext,
    HttpToolHandler,
    RiskLevel,
    ToolCatalog,
    ToolCategory,
    ToolDefinition,
    ToolResult,
)

# Autonomy and confidence
from .autonomy import AutonomyGate, AutonomyPreset, AutonomySettings, GraduationTracker, OwnerProfile
from .confidence import ConfidenceCalibrator, InMemoryHistory

# Resilience
from .resilience import ErrorCategory, ResilientToolExecutor, ToolExecutionResult

# Orchestrator
from .orchestrator import (
    ApprovalDecision,
    ApprovalQueue,
    AuditLogger,
    CallOutcome,
    CallStatus,
    ContextWindowManager,
    PendingAction,
    ToolCallPipeline,
)

# Workflows and checkpoints (workflow first: checkpoint models use its enums)
from .workflow import GateSignal, WorkflowEngine, WorkflowLoader, WorkflowRunResult, WorkflowStatus
from .checkpoint import CheckpointExpiredError, CheckpointVersionError, WorkflowCheckpoint

# Background tasks
from .triggers import BackgroundTaskDefinition, BackgroundTaskScheduler, EventBus

# Application
from .config import ConfigError, EngineConfig, load_config
from .app import ApprovalResolution, Steward

__all__ = [
    "__version__",
    # Tools
    "AutonomyLevel",
    "CallerContext",
    "HttpToolHandler",
    "RiskLevel",
    "ToolCatalog",
    "ToolCategory",
    "ToolDefinition",
    "ToolResult",
    # Autonomy and confidence
    "AutonomyGate",
    "AutonomyPreset",
    "AutonomySettings",
    "ConfidenceCalibrator",
    "GraduationTracker",
    "InMemoryHistory",
    "OwnerProfile",
    # Resilience
    "ErrorCategory",
    "ResilientToolExecutor",
    "ToolExecutionResult",
    # Orchestrator
    "ApprovalDecision",
    "ApprovalQueue",
    "AuditLogger",
    "CallOutcome",
    "CallStatus",
    "ContextWindowManager",
    "PendingAction",
    "ToolCallPipeline",
    # Workflows and checkpoints
    "CheckpointExpiredError",
    "CheckpointVersionError",
    "GateSignal",
    "WorkflowCheckpoint",
    "WorkflowEngine",
    "WorkflowLoader",
    "WorkflowRunResult",
    "WorkflowStatus",
    # Background tasks
    "BackgroundTaskDefinition",
    "BackgroundTaskScheduler",
    "EventBus",
    # Application
    "ApprovalResolution",
    "ConfigError",
    "EngineConfig",
    "Steward",
    "load_config",
]
