"""
Steward Workflow Engine - sequential, checkpointed, compensating workflows

State machine per instance:

    running -> step executes through the resilient executor
            -> advance | paused (gate) | failed
    paused  -> gate signal -> running
    failed  -> compensating -> failed_compensated
    paused  -> cancel -> compensating -> cancelled
    paused  -> resume window lapsed -> expired

SafetyHalt stops the instance in ``failed`` without compensation and
raises an operator alert. Paused instances hold no task; they are
rehydrated from their checkpoint when a signal arrives.
"""

import dataclasses
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

from ..checkpoint.models import CheckpointExpiredError, CompensationAction, WorkflowCheckpoint
from ..checkpoint.storage import CheckpointStorage, MemoryStorage
from ..clock import Clock, now_ms
from ..orchestrator.approval import ApprovalDecision, ApprovalQueue, PendingActionStatus
from ..resilience.executor import ResilientToolExecutor
from ..resilience.idempotency import KeyedLocks
from ..resilience.models import ErrorCategory, ToolExecutionResult
from ..tools.models import AutonomyLevel, CallerContext
from ..triggers.event_bus import WORKFLOW_WEBHOOK
from .loader import WorkflowLoader
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

if TYPE_CHECKING:
    from ..orchestrator.audit_logger import AuditLogger
    from ..protocols import ApprovalChannelProtocol
    from ..triggers.event_bus import Event, EventBus

logger = logging.getLogger(__name__)


class WorkflowStateError(Exception):
    """Raised when an operation does not fit the instance's current state"""
    pass


class WorkflowEngine:
    """
    Runs workflow definitions step by step.

    Usage:
        engine = WorkflowEngine(executor, storage=MemoryStorage(), loader=loader)
        result = await engine.start("workflow_maintenance_lifecycle", ctx, {"maintenance_id": "m1"})
        if result.pending_gate == GateType.OWNER_APPROVAL:
            result = await engine.resume(result.workflow_id, GateSignal.approval("approve"))
    """

    def __init__(
        self,
        executor: ResilientToolExecutor,
        storage: Optional[CheckpointStorage] = None,
        loader: Optional[WorkflowLoader] = None,
        approvals: Optional[ApprovalQueue] = None,
        channel: Optional["ApprovalChannelProtocol"] = None,
        audit: Optional["AuditLogger"] = None,
        clock: Optional[Clock] = None,
    ):
        self.executor = executor
        self.storage = storage or MemoryStorage()
        self.loader = loader or WorkflowLoader()
        self.approvals = approvals
        self.channel = channel
        self.audit = audit
        self._clock = clock or now_ms
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(
        self,
        workflow_name: str,
        context: CallerContext,
        initial_context: Optional[Dict[str, Any]] = None,
        maturity_level: Optional[int] = None,
        workflow_id: Optional[str] = None,
    ) -> WorkflowRunResult:
        """
        Start a new instance and run it until it pauses or ends.

        Raises:
            WorkflowStateError: If the workflow is unknown or not yet unlocked
        """
        definition = self._definition(workflow_name)
        if maturity_level is not None and maturity_level < definition.available_from_level:
            raise WorkflowStateError(
                f"{workflow_name} unlocks at level {definition.available_from_level}; "
                f"owner is at level {maturity_level}"
            )

        workflow_id = workflow_id or f"wf_{uuid.uuid4().hex[:12]}"
        caller = dataclasses.replace(context, workflow_id=workflow_id)
        now = self._clock()
        checkpoint = WorkflowCheckpoint(
            workflow_id=workflow_id,
            workflow_name=workflow_name,
            owner_id=context.owner_id,
            accumulated_context=dict(initial_context or {}),
            caller=caller.to_dict(),
            started_at_ms=now,
        )
        await self._save(definition, checkpoint)
        self._transition(checkpoint, None, WorkflowStatus.RUNNING)
        logger.info(f"Workflow {workflow_name} started as {workflow_id} for {context.owner_id}")

        outcome = self._new_outcome(checkpoint)
        return await self._advance(definition, checkpoint, caller, outcome)

    async def resume(self, workflow_id: str, signal: GateSignal) -> WorkflowRunResult:
        """
        Satisfy the gate an instance is paused at and continue it.

        A schedule signal that arrives before the scheduled time leaves the
        instance paused.

        Raises:
            WorkflowStateError: Unknown instance, not paused, wrong gate, or already
                taken by a concurrent signal
            CheckpointExpiredError: The resume window has lapsed
            CheckpointVersionError: The checkpoint has an unsupported schema version
        """
        async with self._locks.hold(workflow_id):
            return await self._resume(workflow_id, signal)

    async def cancel(self, workflow_id: str, reason: str = "Cancelled by owner") -> WorkflowRunResult:
        """
        Cancel an instance paused at a gate, compensating completed steps.

        Raises:
            WorkflowStateError: If the instance is unknown or not paused
            CheckpointExpiredError: The resume window has lapsed
        """
        async with self._locks.hold(workflow_id):
            definition, checkpoint = await self._load_paused(workflow_id)
            await self._claim(definition, checkpoint, WorkflowStatus.COMPENSATING)
            self._settle_action(checkpoint, ApprovalDecision.REJECT, None)
            caller = CallerContext.from_dict(checkpoint.caller)
            outcome = self._new_outcome(checkpoint)
            return await self._compensate(
                definition, checkpoint, caller, outcome, WorkflowStatus.CANCELLED, reason,
                from_status=WorkflowStatus.PAUSED,
            )

    async def get_checkpoint(self, workflow_id: str) -> Optional[WorkflowCheckpoint]:
        return await self.storage.get(workflow_id)

    async def expire_stale(self, limit: int = 1000) -> List[str]:
        """Mark paused instances past their resume window as expired."""
        now = self._clock()
        expired = []
        for checkpoint in await self.storage.list_by_status(WorkflowStatus.PAUSED, limit):
            if checkpoint.is_expired(now):
                await self._expire(checkpoint)
                expired.append(checkpoint.workflow_id)
        if expired:
            logger.info(f"Expired {len(expired)} paused workflow(s)")
        return expired

    async def attach_event_bus(self, bus: "EventBus", source: str = "steward") -> None:
        """Resume instances paused at a webhook gate from ``workflow_webhook`` events."""

        async def _on_webhook(event: "Event") -> None:
            await self.handle_webhook_event(event)

        await bus.subscribe(f"{source}:{WORKFLOW_WEBHOOK}", _on_webhook)
        logger.info(f"Attached event bus for workflow webhooks from {source}")

    async def handle_webhook_event(self, event: "Event") -> Optional[WorkflowRunResult]:
        """
        Deliver a webhook event to its paused instance.

        The bus may redeliver or a second sender may race the first, so a
        signal the instance can no longer take is logged and dropped.
        """
        if not event.workflow_id:
            logger.warning(f"Webhook event {event.event_id} has no workflow_id, dropped")
            return None
        checkpoint = await self.storage.get(event.workflow_id)
        if checkpoint is not None and event.owner_id and checkpoint.owner_id != event.owner_id:
            logger.warning(
                f"Webhook event {event.event_id} for {event.workflow_id} came from owner "
                f"{event.owner_id}, instance belongs to {checkpoint.owner_id}; dropped"
            )
            return None
        try:
            return await self.resume(event.workflow_id, GateSignal.webhook(event.data))
        except (WorkflowStateError, CheckpointExpiredError) as e:
            logger.info(f"Webhook event {event.event_id} not applied: {e}")
            return None

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    async def _resume(self, workflow_id: str, signal: GateSignal) -> WorkflowRunResult:
        definition, checkpoint = await self._load_paused(workflow_id)
        if not definition.resumable:
            raise WorkflowStateError(f"Workflow {definition.name} is not resumable")
        if signal.gate != checkpoint.pending_gate:
            raise WorkflowStateError(
                f"Workflow {workflow_id} is waiting on {checkpoint.pending_gate.value}, "
                f"not {signal.gate.value}"
            )

        caller = CallerContext.from_dict(checkpoint.caller)
        outcome = self._new_outcome(checkpoint)
        decision: Optional[ApprovalDecision] = None

        if signal.gate == GateType.OWNER_APPROVAL:
            decision = ApprovalDecision(signal.decision)
        elif signal.gate == GateType.SCHEDULE_WAIT:
            at_ms = signal.at_ms if signal.at_ms is not None else self._clock()
            if checkpoint.gate_resume_at_ms is not None and at_ms < checkpoint.gate_resume_at_ms:
                logger.debug(
                    f"Schedule signal for {workflow_id} at {at_ms} is before {checkpoint.gate_resume_at_ms}"
                )
                return self._finish(outcome, checkpoint)

        if decision == ApprovalDecision.REJECT:
            await self._claim(definition, checkpoint, WorkflowStatus.COMPENSATING)
            self._settle_action(checkpoint, decision, None)
            logger.info(f"Workflow {workflow_id} rejected at step {checkpoint.step_index}")
            return await self._compensate(
                definition, checkpoint, caller, outcome, WorkflowStatus.CANCELLED,
                "Owner rejected the pending step", from_status=WorkflowStatus.PAUSED,
            )

        await self._claim(definition, checkpoint, WorkflowStatus.RUNNING)
        override: Optional[Dict[str, Any]] = None
        if decision is not None:
            self._settle_action(checkpoint, decision, signal.modified_params)
            if decision == ApprovalDecision.MODIFY:
                override = dict(signal.modified_params or {})
        elif signal.gate == GateType.WEBHOOK_WAIT:
            checkpoint.accumulated_context.update(signal.payload)

        checkpoint.pending_gate = None
        checkpoint.pending_action_id = None
        checkpoint.gate_resume_at_ms = None
        self._transition(checkpoint, WorkflowStatus.PAUSED, WorkflowStatus.RUNNING, f"{signal.gate.value} satisfied")
        return await self._advance(definition, checkpoint, caller, outcome, gate_cleared=True, override=override)

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    async def _advance(
        self,
        definition: WorkflowDefinition,
        checkpoint: WorkflowCheckpoint,
        caller: CallerContext,
        outcome: WorkflowRunResult,
        gate_cleared: bool = False,
        override: Optional[Dict[str, Any]] = None,
    ) -> WorkflowRunResult:
        steps = definition.steps
        while checkpoint.step_index < len(steps):
            step = steps[checkpoint.step_index]

            if self._clock() - checkpoint.started_at_ms > definition.max_duration_ms:
                failed = StepOutcome(
                    index=step.index, tool_name=step.tool_name, success=False,
                    error=f"Workflow exceeded its maximum duration of {definition.max_duration_ms}ms",
                )
                return await self._fail(definition, checkpoint, caller, outcome, failed)

            if step.gate is not None and not gate_cleared:
                return await self._pause(definition, checkpoint, step, outcome)
            gate_cleared = False

            params = self._resolve_params(step, checkpoint)
            if override:
                params.update(override)
                override = None

            if step.per_item:
                step_outcome, data, halted = await self._run_per_item(step, params, caller)
            else:
                step_outcome, data, halted = await self._run_step(step, params, caller)
            outcome.steps.append(step_outcome)

            if halted:
                return await self._halt(checkpoint, outcome, step_outcome)

            if step_outcome.success:
                self._record_success(step, checkpoint, data)
            elif step.optional:
                step_outcome.skipped = True
                checkpoint.skipped_steps.append(step.index)
                logger.info(
                    f"Optional step {step.index} ({step.tool_name}) of {checkpoint.workflow_id} "
                    f"skipped: {step_outcome.error}"
                )
            else:
                return await self._fail(definition, checkpoint, caller, outcome, step_outcome)

            checkpoint.step_index += 1
            if definition.checkpoint_after_each_step:
                await self._save(definition, checkpoint)

        checkpoint.status = WorkflowStatus.COMPLETED
        await self._save(definition, checkpoint)
        self._transition(checkpoint, WorkflowStatus.RUNNING, WorkflowStatus.COMPLETED)
        logger.info(f"Workflow {checkpoint.workflow_id} completed")
        return self._finish(outcome, checkpoint)

    async def _run_step(
        self, step: WorkflowStep, params: Dict[str, Any], caller: CallerContext
    ) -> Tuple[StepOutcome, Any, bool]:
        result = await self.executor.execute(step.tool_name, params, caller, allow_defer=False)
        return self._step_outcome(step, result), result.data, result.safety_halt

    async def _run_per_item(
        self, step: WorkflowStep, params: Dict[str, Any], caller: CallerContext
    ) -> Tuple[StepOutcome, Any, bool]:
        """Run the step once per item; it fails only when every item fails."""
        items = self._collection(params)
        results: List[Any] = []
        errors: List[str] = []
        last: Optional[ToolExecutionResult] = None
        for item in items:
            item_params = dict(item) if isinstance(item, dict) else {"input": item}
            item_params.update(step.static_params)
            last = await self.executor.execute(step.tool_name, item_params, caller, allow_defer=False)
            if last.safety_halt:
                return self._step_outcome(step, last), None, True
            if last.success:
                results.append(last.data)
            else:
                errors.append(last.error or "unknown error")
                logger.warning(f"Item of step {step.index} ({step.tool_name}) failed: {last.error}")

        success = not items or bool(results)
        step_outcome = StepOutcome(
            index=step.index,
            tool_name=step.tool_name,
            success=success,
            item_count=len(items),
            failed_items=len(errors),
            error=None if success else f"All {len(items)} items failed: {errors[-1]}",
            error_category=None if success or last is None else last.error_category,
        )
        return step_outcome, {"items": results}, False

    @staticmethod
    def _step_outcome(step: WorkflowStep, result: ToolExecutionResult) -> StepOutcome:
        return StepOutcome(
            index=step.index,
            tool_name=step.tool_name,
            success=result.success,
            data=result.data,
            error=None if result.success else result.error,
            error_category=result.error_category,
        )

    @staticmethod
    def _collection(params: Dict[str, Any]) -> List[Any]:
        if isinstance(params.get("items"), list):
            return params["items"]
        for value in params.values():
            if isinstance(value, list):
                return value
        return []

    @staticmethod
    def _resolve_params(step: WorkflowStep, checkpoint: WorkflowCheckpoint) -> Dict[str, Any]:
        if step.param_mode == ParamMode.STATIC:
            params: Dict[str, Any] = {}
        elif step.param_mode == ParamMode.FROM_PREVIOUS:
            previous = checkpoint.step_result
            if isinstance(previous, dict):
                params = dict(previous)
            elif previous is None:
                params = {}
            else:
                params = {"input": previous}
        elif step.param_mode == ParamMode.FROM_CONTEXT:
            params = dict(checkpoint.accumulated_context)
        else:
            raise ValueError(f"Unhandled param mode: {step.param_mode}")
        params.update(step.static_params)
        return params

    @staticmethod
    def _record_success(step: WorkflowStep, checkpoint: WorkflowCheckpoint, data: Any) -> None:
        checkpoint.step_result = data
        checkpoint.completed_steps.append(step.index)
        if isinstance(data, dict):
            checkpoint.accumulated_context.update(data)
        if step.compensation_tool:
            params = dict(data) if isinstance(data, dict) else {}
            params.update(step.compensation_params)
            checkpoint.push_compensation(CompensationAction(
                step_index=step.index,
                tool_name=step.compensation_tool,
                params=params,
            ))

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    async def _pause(
        self,
        definition: WorkflowDefinition,
        checkpoint: WorkflowCheckpoint,
        step: WorkflowStep,
        outcome: WorkflowRunResult,
    ) -> WorkflowRunResult:
        checkpoint.status = WorkflowStatus.PAUSED
        checkpoint.pending_gate = step.gate

        if step.gate == GateType.OWNER_APPROVAL:
            await self._request_approval(definition, checkpoint, step)
        elif step.gate == GateType.SCHEDULE_WAIT:
            checkpoint.gate_resume_at_ms = self._clock() + step.gate_delay_ms

        await self._save(definition, checkpoint)
        self._transition(
            checkpoint, WorkflowStatus.RUNNING, WorkflowStatus.PAUSED,
            f"{step.gate.value} before step {step.index}",
        )
        logger.info(
            f"Workflow {checkpoint.workflow_id} paused at step {step.index} ({step.gate.value})"
        )
        return self._finish(outcome, checkpoint)

    async def _request_approval(
        self, definition: WorkflowDefinition, checkpoint: WorkflowCheckpoint, step: WorkflowStep
    ) -> None:
        catalog = self.executor.catalog
        if self.approvals is None or not catalog.has(step.tool_name):
            return
        action = self.approvals.create(
            owner_id=checkpoint.owner_id,
            tool=catalog.get(step.tool_name),
            params=self._resolve_params(step, checkpoint),
            level=AutonomyLevel.DRAFT,
            reason=f"{definition.name} step {step.index + 1}: {step.description or step.tool_name}",
            workflow_id=checkpoint.workflow_id,
            context=checkpoint.caller,
            expires_at_ms=self._clock() + definition.resume_window_ms,
        )
        checkpoint.pending_action_id = action.id
        if self.audit is not None:
            self.audit.log_pending_action(action)
        if self.channel is not None:
            try:
                await self.channel.notify(action)
            except Exception as e:
                logger.warning(f"Approval notification for {action.id} failed: {e}")

    def _settle_action(
        self,
        checkpoint: WorkflowCheckpoint,
        decision: ApprovalDecision,
        modified_params: Optional[Dict[str, Any]],
    ) -> None:
        """Close the linked pending action if the decision arrived some other way."""
        if self.approvals is None or checkpoint.pending_action_id is None:
            return
        action = self.approvals.get(checkpoint.pending_action_id)
        if action is None or action.status != PendingActionStatus.PENDING:
            return
        if decision == ApprovalDecision.MODIFY and not modified_params:
            decision = ApprovalDecision.APPROVE
        self.approvals.resolve(action.id, decision, modified_params)

    # ------------------------------------------------------------------
    # Failure, compensation, halt, expiry
    # ------------------------------------------------------------------

    async def _fail(
        self,
        definition: WorkflowDefinition,
        checkpoint: WorkflowCheckpoint,
        caller: CallerContext,
        outcome: WorkflowRunResult,
        failed: StepOutcome,
    ) -> WorkflowRunResult:
        error = f"Step {failed.index} ({failed.tool_name}) failed: {failed.error}"
        logger.warning(f"Workflow {checkpoint.workflow_id}: {error}")
        checkpoint.status = WorkflowStatus.FAILED
        checkpoint.error = error
        outcome.error_category = failed.error_category
        self._transition(checkpoint, WorkflowStatus.RUNNING, WorkflowStatus.FAILED, error)
        return await self._compensate(
            definition, checkpoint, caller, outcome, WorkflowStatus.FAILED_COMPENSATED, error,
        )

    async def _compensate(
        self,
        definition: WorkflowDefinition,
        checkpoint: WorkflowCheckpoint,
        caller: CallerContext,
        outcome: WorkflowRunResult,
        final_status: WorkflowStatus,
        reason: str,
        from_status: Optional[WorkflowStatus] = None,
    ) -> WorkflowRunResult:
        """Undo completed steps most-recent-first. Failures are logged, never retried."""
        previous = from_status or checkpoint.status
        checkpoint.status = WorkflowStatus.COMPENSATING
        checkpoint.pending_gate = None
        checkpoint.pending_action_id = None
        checkpoint.gate_resume_at_ms = None
        checkpoint.error = reason
        await self._save(definition, checkpoint)
        self._transition(checkpoint, previous, WorkflowStatus.COMPENSATING, reason)

        while checkpoint.compensation_stack:
            action = checkpoint.compensation_stack.pop(0)
            result = await self.executor.compensate(action.tool_name, action.params, caller)
            outcome.compensations.append(CompensationOutcome(
                step_index=action.step_index,
                tool_name=action.tool_name,
                success=result.success,
                error=result.error,
            ))
            if not result.success:
                logger.error(
                    f"Compensation {action.tool_name} for step {action.step_index} of "
                    f"{checkpoint.workflow_id} failed: {result.error}"
                )
            await self._save(definition, checkpoint)

        checkpoint.status = final_status
        await self._save(definition, checkpoint)
        self._transition(checkpoint, WorkflowStatus.COMPENSATING, final_status)
        outcome.error = reason
        return self._finish(outcome, checkpoint)

    async def _halt(
        self,
        checkpoint: WorkflowCheckpoint,
        outcome: WorkflowRunResult,
        failed: StepOutcome,
    ) -> WorkflowRunResult:
        error = f"Safety halt at step {failed.index} ({failed.tool_name}): {failed.error}"
        logger.error(f"Workflow {checkpoint.workflow_id}: {error}")
        checkpoint.status = WorkflowStatus.FAILED
        checkpoint.error = error
        definition = self._definition(checkpoint.workflow_name)
        await self._save(definition, checkpoint)
        self._transition(checkpoint, WorkflowStatus.RUNNING, WorkflowStatus.FAILED, error)
        if self.audit is not None:
            self.audit.log_operator_alert(
                tool_name=failed.tool_name,
                owner_id=checkpoint.owner_id,
                error=error,
                error_category=ErrorCategory.SAFETY_HALT.value,
            )
        outcome.safety_halt = True
        outcome.error = error
        outcome.error_category = ErrorCategory.SAFETY_HALT
        return self._finish(outcome, checkpoint)

    async def _expire(self, checkpoint: WorkflowCheckpoint) -> None:
        previous = checkpoint.status
        checkpoint.status = WorkflowStatus.EXPIRED
        checkpoint.updated_at_ms = self._clock()
        await self.storage.save(checkpoint)
        self._transition(checkpoint, previous, WorkflowStatus.EXPIRED)
        logger.info(f"Workflow {checkpoint.workflow_id} expired")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _definition(self, workflow_name: str) -> WorkflowDefinition:
        definition = self.loader.get(workflow_name)
        if definition is None:
            raise WorkflowStateError(f"Unknown workflow: {workflow_name}")
        return definition

    async def _load_paused(self, workflow_id: str) -> Tuple[WorkflowDefinition, WorkflowCheckpoint]:
        checkpoint = await self.storage.get(workflow_id)
        if checkpoint is None:
            raise WorkflowStateError(f"Unknown workflow instance: {workflow_id}")
        if checkpoint.status != WorkflowStatus.PAUSED:
            raise WorkflowStateError(
                f"Workflow {workflow_id} is {checkpoint.status.value}, not paused at a gate"
            )
        if checkpoint.is_expired(self._clock()):
            await self._expire(checkpoint)
            raise CheckpointExpiredError(workflow_id, checkpoint.expires_at_ms)
        return self._definition(checkpoint.workflow_name), checkpoint

    async def _claim(
        self, definition: WorkflowDefinition, checkpoint: WorkflowCheckpoint, status: WorkflowStatus
    ) -> None:
        """Move a paused checkpoint to ``status``; a second signal for the same gate loses."""
        expected = checkpoint.updated_at_ms
        now = self._clock()
        checkpoint.status = status
        checkpoint.updated_at_ms = now
        checkpoint.expires_at_ms = now + definition.resume_window_ms
        if not await self.storage.save_if_unchanged(checkpoint, WorkflowStatus.PAUSED, expected):
            raise WorkflowStateError(f"Workflow {checkpoint.workflow_id} was already resumed")

    async def _save(self, definition: WorkflowDefinition, checkpoint: WorkflowCheckpoint) -> None:
        now = self._clock()
        checkpoint.updated_at_ms = now
        checkpoint.expires_at_ms = now + definition.resume_window_ms
        await self.storage.save(checkpoint)

    def _transition(
        self,
        checkpoint: WorkflowCheckpoint,
        from_status: Optional[WorkflowStatus],
        to_status: WorkflowStatus,
        detail: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.log_workflow_transition(
            owner_id=checkpoint.owner_id,
            workflow_id=checkpoint.workflow_id,
            workflow_name=checkpoint.workflow_name,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            step_index=checkpoint.step_index,
            detail=detail,
        )

    @staticmethod
    def _new_outcome(checkpoint: WorkflowCheckpoint) -> WorkflowRunResult:
        return WorkflowRunResult(
            workflow_id=checkpoint.workflow_id,
            workflow_name=checkpoint.workflow_name,
            status=checkpoint.status,
            step_index=checkpoint.step_index,
        )

    @staticmethod
    def _finish(outcome: WorkflowRunResult, checkpoint: WorkflowCheckpoint) -> WorkflowRunResult:
        outcome.status = checkpoint.status
        outcome.step_index = checkpoint.step_index
        outcome.pending_gate = checkpoint.pending_gate
        outcome.pending_action_id = checkpoint.pending_action_id
        outcome.resume_at_ms = checkpoint.gate_resume_at_ms
        return outcome
