"""
Structured audit logging for engine decisions.

Produces JSON log entries via Python's standard logging module under
the ``steward.audit`` logger name.  Each entry includes a timestamp,
event_type, owner_id, and event-specific fields.  An optional sink keeps
the same entries queryable in-process (e.g. for an operator console).

Usage::

    audit = AuditLogger(sink=MemoryAuditSink())
    audit.log_autonomy_decision(owner_id="own_1", resolution=resolution)
"""

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..autonomy.models import AutonomyResolution
    from ..confidence.models import ConfidenceFactors
    from ..resilience.models import ToolExecutionResult
    from .approval import PendingAction

_audit_logger = logging.getLogger("steward.audit")


@dataclass
class AuditRecord:
    """One audit entry as kept by a sink."""
    event_type: str
    timestamp: str
    owner_id: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        entry = {
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "owner_id": self.owner_id,
        }
        entry.update(self.fields)
        return entry


class MemoryAuditSink:
    """Bounded in-memory audit trail."""

    def __init__(self, max_records: int = 10_000) -> None:
        self._records: Deque[AuditRecord] = deque(maxlen=max_records)

    def write(self, record: AuditRecord) -> None:
        self._records.append(record)

    def query(
        self,
        owner_id: Optional[str] = None,
        tool_name: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditRecord]:
        """Matching records, oldest first."""
        matches = [
            r for r in self._records
            if (owner_id is None or r.owner_id == owner_id)
            and (tool_name is None or r.fields.get("tool_name") == tool_name)
            and (event_type is None or r.event_type == event_type)
        ]
        if limit is not None:
            matches = matches[-limit:]
        return matches

    def __len__(self) -> int:
        return len(self._records)


class AuditLogger:
    """Structured audit logger for tool calls, approvals and workflow transitions."""

    def __init__(self, sink: Optional[MemoryAuditSink] = None) -> None:
        self.sink = sink

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _emit(self, event_type: str, owner_id: Optional[str], fields: Dict[str, Any]) -> None:
        record = AuditRecord(
            event_type=event_type,
            timestamp=datetime.now(timezone.utc).isoformat(),
            owner_id=owner_id or "",
            fields=fields,
        )
        _audit_logger.info(json.dumps(record.to_dict(), default=str))
        if self.sink is not None:
            self.sink.write(record)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def log_tool_execution(
        self,
        owner_id: str,
        result: "ToolExecutionResult",
        args_summary: List[str],
        workflow_id: Optional[str] = None,
        task_name: Optional[str] = None,
    ) -> None:
        """Log a tool execution result. Only argument names are recorded, never values."""
        fields: Dict[str, Any] = {
            "tool_name": result.tool_name,
            "status": result.status.value,
            "success": result.success,
            "attempts": result.attempts,
            "duration_ms": result.duration_ms,
            "args_summary": args_summary,
        }
        if result.error is not None:
            fields["error"] = result.error
        if result.error_category is not None:
            fields["error_category"] = result.error_category.value
        if result.circuit_breaker_triggered:
            fields["circuit_breaker_triggered"] = True
        if result.fallback_used is not None:
            fields["fallback_used"] = result.fallback_used.value
        if result.idempotent_replay:
            fields["idempotent_replay"] = True
        if workflow_id:
            fields["workflow_id"] = workflow_id
        if task_name:
            fields["task_name"] = task_name
        self._emit("tool_execution", owner_id, fields)

    def log_operator_alert(
        self,
        tool_name: str,
        owner_id: Optional[str],
        error: str,
        error_category: str,
    ) -> None:
        """Log a failure that needs an operator, not the owner."""
        self._emit("operator_alert", owner_id, {
            "tool_name": tool_name,
            "error": error,
            "error_category": error_category,
        })

    def log_autonomy_decision(self, owner_id: str, resolution: "AutonomyResolution") -> None:
        """Log how a tool call's autonomy level was resolved."""
        self._emit("autonomy_decision", owner_id, resolution.to_dict())

    def log_confidence(
        self, owner_id: str, tool_name: str, factors: "ConfidenceFactors"
    ) -> None:
        self._emit("confidence", owner_id, {"tool_name": tool_name, **factors.to_dict()})

    def log_pending_action(self, action: "PendingAction") -> None:
        """Log that an action was queued for owner approval."""
        self._emit("pending_action", action.owner_id, {
            "action_id": action.id,
            "tool_name": action.tool_name,
            "autonomy_level": action.autonomy_level,
            "confidence": action.confidence,
            "workflow_id": action.workflow_id,
            "reason": action.reason,
        })

    def log_approval_decision(
        self,
        owner_id: str,
        action_id: str,
        tool_name: str,
        decision: str,
    ) -> None:
        """Log an owner's approve / reject / modify decision."""
        self._emit("approval_decision", owner_id, {
            "action_id": action_id,
            "tool_name": tool_name,
            "decision": decision,
        })

    def log_workflow_transition(
        self,
        owner_id: str,
        workflow_id: str,
        workflow_name: str,
        from_status: Optional[str],
        to_status: str,
        step_index: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> None:
        fields: Dict[str, Any] = {
            "workflow_id": workflow_id,
            "workflow_name": workflow_name,
            "from_status": from_status,
            "to_status": to_status,
        }
        if step_index is not None:
            fields["step_index"] = step_index
        if detail:
            fields["detail"] = detail
        self._emit("workflow_transition", owner_id, fields)

    def log_background_task(
        self,
        owner_id: str,
        task_name: str,
        success: bool,
        duration_ms: int,
        outputs: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """Log one background task run for one owner."""
        fields: Dict[str, Any] = {
            "task_name": task_name,
            "success": success,
            "duration_ms": duration_ms,
        }
        if outputs:
            fields["outputs"] = outputs
        if error is not None:
            fields["error"] = error
        self._emit("background_task", owner_id, fields)
