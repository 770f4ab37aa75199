"""
Steward Orchestrator Module

The owner-facing call path:
- Tool call pipeline: autonomy gate -> confidence -> approval or execution
- Approval queue of pending actions with approve / reject / modify decisions
- Structured audit logging of every decision
- Context window management for long conversations

Quick Start:
    from steward.orchestrator import ToolCallPipeline

    outcome = await pipeline.submit("send_rent_reminder", {"tenant_id": "t1"}, ctx, settings)
    if outcome.pending_action:
        ...
    await pipeline.resolve_pending(outcome.pending_action.id, "approve")
"""

from .approval import (
    ApprovalDecision,
    ApprovalError,
    ApprovalQueue,
    PendingAction,
    PendingActionStatus,
    build_preview,
)
from .audit_logger import AuditLogger, AuditRecord, MemoryAuditSink
from .context_manager import COMPACTION_PLACEHOLDER, ContextWindowManager
from .pipeline import CallOutcome, CallStatus, ToolCallPipeline

__all__ = [
    "COMPACTION_PLACEHOLDER",
    "ApprovalDecision",
    "ApprovalError",
    "ApprovalQueue",
    "AuditLogger",
    "AuditRecord",
    "CallOutcome",
    "CallStatus",
    "ContextWindowManager",
    "MemoryAuditSink",
    "PendingAction",
    "PendingActionStatus",
    "ToolCallPipeline",
    "build_preview",
]
