"""
Tool call pipeline - the path an interactive or scheduled tool call takes.

    catalog lookup -> autonomy gate -> confidence calibration
        -> approval queue (owner decides later)
        or resilient executor -> execution history

Owner decisions on queued actions come back through ``resolve_pending``,
which feeds graduation tracking and executes approved or modified actions.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING

from ..autonomy.gate import AutonomyGate
from ..autonomy.graduation import GraduationTracker
from ..autonomy.models import AutonomyPermissionError, AutonomyResolution, AutonomySettings
from ..confidence.calibrator import ConfidenceCalibrator
from ..confidence.models import ConfidenceFactors
from ..constants import LOW_CONFIDENCE_THRESHOLD
from ..resilience.executor import ResilientToolExecutor
from ..resilience.models import ExecutionStatus, ToolExecutionResult
from ..tools.models import AutonomyLevel, CallerContext
from .approval import ApprovalDecision, ApprovalQueue, PendingAction

if TYPE_CHECKING:
    from ..protocols import ApprovalChannelProtocol, HistoryProviderProtocol
    from .audit_logger import AuditLogger

logger = logging.getLogger(__name__)

# Statuses that reflect how the tool itself behaved
_RECORDED_STATUSES = frozenset({
    ExecutionStatus.SUCCEEDED,
    ExecutionStatus.FAILED,
    ExecutionStatus.TIMED_OUT,
})


class CallStatus(str, Enum):
    EXECUTED = "executed"
    PENDING_APPROVAL = "pending_approval"
    DENIED = "denied"
    REJECTED = "rejected"


@dataclass
class CallOutcome:
    """What happened to one submitted tool call."""
    tool_name: str
    status: CallStatus
    resolution: Optional[AutonomyResolution] = None
    confidence: Optional[ConfidenceFactors] = None
    result: Optional[ToolExecutionResult] = None
    pending_action: Optional[PendingAction] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == CallStatus.EXECUTED and self.result is not None and self.result.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "status": self.status.value,
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "confidence": self.confidence.to_dict() if self.confidence else None,
            "result": self.result.to_dict() if self.result else None,
            "pending_action": self.pending_action.to_dict() if self.pending_action else None,
            "error": self.error,
        }


class ToolCallPipeline:
    """Gate, calibrate, then queue or execute one tool call."""

    def __init__(
        self,
        executor: ResilientToolExecutor,
        gate: AutonomyGate,
        graduation: GraduationTracker,
        calibrator: ConfidenceCalibrator,
        history: "HistoryProviderProtocol",
        approvals: ApprovalQueue,
        channel: Optional["ApprovalChannelProtocol"] = None,
        audit: Optional["AuditLogger"] = None,
        low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD,
    ):
        self.executor = executor
        self.catalog = executor.catalog
        self.gate = gate
        self.graduation = graduation
        self.calibrator = calibrator
        self.history = history
        self.approvals = approvals
        self.channel = channel
        self.audit = audit
        self.low_confidence_threshold = low_confidence_threshold

    async def submit(
        self,
        tool_name: str,
        input: Optional[Dict[str, Any]],
        context: CallerContext,
        settings: Optional[AutonomySettings] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CallOutcome:
        input = dict(input or {})
        settings = settings or AutonomySettings()

        if not self.catalog.has(tool_name):
            # The executor reports unknown tools as a permanent logic failure
            result = await self.executor.execute(tool_name, input, context, cancel_event)
            return CallOutcome(tool_name=tool_name, status=CallStatus.EXECUTED, result=result, error=result.error)

        tool = self.catalog.get(tool_name)
        try:
            resolution = self.gate.resolve(
                tool,
                settings,
                context.tier,
                graduation=self.graduation.peek(context.owner_id, tool_name),
                cap=context.autonomy_cap,
            )
        except AutonomyPermissionError as e:
            logger.info(f"Denied {tool_name} for {context.owner_id}: {e}")
            return CallOutcome(tool_name=tool_name, status=CallStatus.DENIED, error=str(e))

        if self.audit is not None:
            self.audit.log_autonomy_decision(context.owner_id, resolution)

        confidence: Optional[ConfidenceFactors] = None
        level = resolution.level
        requires_approval = resolution.requires_approval
        reason = f"Autonomy {level.label} is below auto-execute"
        if self.calibrator.needs_calibration(tool):
            confidence = await self.calibrator.calculate(tool, context.owner_id, context.intent_hash)
            if self.audit is not None:
                self.audit.log_confidence(context.owner_id, tool_name, confidence)
            if confidence.composite < self.low_confidence_threshold and level > AutonomyLevel.INFORM:
                level = AutonomyLevel(level - 1)
                if not requires_approval and level < self.gate.auto_execute_level:
                    requires_approval = True
                    reason = f"Low confidence ({confidence.composite:.2f})"

        if requires_approval:
            action = await self._queue(tool_name, input, context, level, reason, confidence)
            return CallOutcome(
                tool_name=tool_name,
                status=CallStatus.PENDING_APPROVAL,
                resolution=resolution,
                confidence=confidence,
                pending_action=action,
            )

        result = await self._run(tool_name, input, context, cancel_event)
        return CallOutcome(
            tool_name=tool_name,
            status=CallStatus.EXECUTED,
            resolution=resolution,
            confidence=confidence,
            result=result,
            error=result.error,
        )

    async def resolve_pending(
        self,
        action_id: str,
        decision: ApprovalDecision,
        modified_params: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CallOutcome:
        """
        Apply an owner decision to a queued action.

        Workflow-gate actions are only recorded here; the workflow engine
        resumes the instance itself.

        Raises:
            ApprovalError: If the action is unknown, resolved or expired
        """
        decision = ApprovalDecision(decision)
        action = self.approvals.resolve(action_id, decision, modified_params)
        return await self.record_decision(action, decision, cancel_event)

    async def record_decision(
        self,
        action: PendingAction,
        decision: ApprovalDecision,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CallOutcome:
        """Feed an applied decision to graduation, history and audit, then run an approved plain action."""
        self.graduation.record(action.owner_id, action.tool_name, decision.feedback)
        await self.history.record_decision(action.owner_id, action.tool_name, decision.feedback)
        if self.audit is not None:
            self.audit.log_approval_decision(action.owner_id, action.id, action.tool_name, decision.value)

        if decision == ApprovalDecision.REJECT:
            return CallOutcome(tool_name=action.tool_name, status=CallStatus.REJECTED, pending_action=action)
        if action.workflow_id is not None:
            return CallOutcome(tool_name=action.tool_name, status=CallStatus.PENDING_APPROVAL, pending_action=action)

        context = (
            CallerContext.from_dict(action.context) if action.context
            else CallerContext(owner_id=action.owner_id)
        )
        result = await self._run(action.tool_name, action.effective_params, context, cancel_event)
        return CallOutcome(
            tool_name=action.tool_name,
            status=CallStatus.EXECUTED,
            result=result,
            pending_action=action,
            error=result.error,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _queue(
        self,
        tool_name: str,
        input: Dict[str, Any],
        context: CallerContext,
        level: AutonomyLevel,
        reason: str,
        confidence: Optional[ConfidenceFactors],
    ) -> PendingAction:
        action = self.approvals.create(
            owner_id=context.owner_id,
            tool=self.catalog.get(tool_name),
            params=input,
            level=level,
            reason=reason,
            confidence=confidence.composite if confidence else None,
            workflow_id=context.workflow_id,
            task_name=context.task_name,
            context=context.to_dict(),
        )
        if self.audit is not None:
            self.audit.log_pending_action(action)
        if self.channel is not None:
            try:
                await self.channel.notify(action)
            except Exception as e:
                # The action stays queued; the owner can still find it in the inbox
                logger.warning(f"Approval notification for {action.id} failed: {e}")
        return action

    async def _run(
        self,
        tool_name: str,
        input: Dict[str, Any],
        context: CallerContext,
        cancel_event: Optional[asyncio.Event],
    ) -> ToolExecutionResult:
        result = await self.executor.execute(tool_name, input, context, cancel_event)
        if result.status in _RECORDED_STATUSES and not result.idempotent_replay:
            await self.history.record_execution(
                context.owner_id, tool_name, result.success, result.duration_ms, input,
            )
        return result
