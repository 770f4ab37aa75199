"""
Resilient tool executor - the single path every tool call takes.

Per call:
    idempotency lookup -> [circuit check -> timeout race -> classify] x attempts
    -> fallback (only for Transient / Degraded / PermanentSystem) -> audit

Tool failures are never raised; they come back classified inside a
ToolExecutionResult so the caller can re-plan, escalate or halt.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING

from ..clock import Clock, now_ms
from ..tools.catalog import ToolCatalog, UnknownToolError
from ..tools.models import CallerContext, ToolDefinition, ToolResult
from .circuit_breaker import CircuitBreakerRegistry, CircuitOpenError
from .classifier import classify_exception, classify_result
from .fallback import DeferredQueue, ResultCache
from .idempotency import IdempotencyGuard, compute_idempotency_key
from .models import (
    CircuitState,
    ErrorCategory,
    ExecutionStatus,
    FallbackStrategy,
    ResiliencePolicy,
    ToolExecutionResult,
)
from .policies import NOTIFICATION_FALLBACK_CHAIN, NotificationChannel, ResiliencePolicyStore

if TYPE_CHECKING:
    from ..orchestrator.audit_logger import AuditLogger
    from ..protocols import ToolHandlerProtocol

logger = logging.getLogger(__name__)


@dataclass
class _Attempt:
    success: bool = False
    data: Any = None
    error: Optional[str] = None
    category: Optional[ErrorCategory] = None
    timed_out: bool = False
    cancelled: bool = False


def _drain(task: "asyncio.Future") -> None:
    # Retrieve the exception of an abandoned handler so asyncio does not warn
    if not task.cancelled():
        task.exception()


class ResilientToolExecutor:
    """
    Executes tools under their resilience policy.

    Usage:
        executor = ResilientToolExecutor(catalog, handler)
        result = await executor.execute("get_arrears", {"property_id": "p1"}, ctx)
        if result.escalation_required:
            ...
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        handler: "ToolHandlerProtocol",
        policies: Optional[ResiliencePolicyStore] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        idempotency: Optional[IdempotencyGuard] = None,
        cache: Optional[ResultCache] = None,
        deferred: Optional[DeferredQueue] = None,
        audit: Optional["AuditLogger"] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Callable[[float], Any]] = None,
        rng: Optional[Callable[[], float]] = None,
    ):
        self.catalog = catalog
        self.handler = handler
        self.policies = policies or ResiliencePolicyStore()
        self._clock = clock or now_ms
        self.breakers = breakers or CircuitBreakerRegistry(self.policies, clock=self._clock)
        self.idempotency = idempotency or IdempotencyGuard(clock=self._clock)
        self.cache = cache or ResultCache(clock=self._clock)
        self.deferred = deferred or DeferredQueue(clock=self._clock)
        self.audit = audit
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.random

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        tool_name: str,
        input: Optional[Dict[str, Any]],
        context: CallerContext,
        cancel_event: Optional[asyncio.Event] = None,
        timeout_ms: Optional[int] = None,
        allow_defer: bool = True,
    ) -> ToolExecutionResult:
        """
        Execute one tool call.

        Args:
            tool_name: Catalog name of the tool
            input: Tool input
            context: Caller context (owner, tier, background/workflow origin)
            cancel_event: Setting it abandons the in-flight attempt and any retries
            timeout_ms: Override for the policy's timeout tier
            allow_defer: False turns a queue fallback into a plain failure, for
                callers that undo their own side effects on failure

        Returns:
            ToolExecutionResult; never raises for tool failures
        """
        return await self._execute(
            tool_name, dict(input or {}), context, cancel_event, timeout_ms, allow_defer=allow_defer,
        )

    async def notify_with_fallback(
        self,
        input: Dict[str, Any],
        context: CallerContext,
        chain: Optional[Sequence[NotificationChannel]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ToolExecutionResult:
        """
        Deliver a notification down the channel ladder (push -> sms -> email -> in-app).

        The first channel that succeeds wins; a final channel without a tool
        (in-app) always succeeds.
        """
        failed: List[str] = []
        last: Optional[ToolExecutionResult] = None
        for channel in chain or NOTIFICATION_FALLBACK_CHAIN:
            if channel.tool_name is None:
                return ToolExecutionResult(
                    tool_name="notify",
                    status=ExecutionStatus.SUCCEEDED,
                    data={"channel": channel.channel, "failed_channels": failed},
                    fallback_used=FallbackStrategy.ALTERNATIVE_TOOL if failed else None,
                )
            last = await self._execute(
                channel.tool_name, dict(input), context, cancel_event,
                channel.timeout_ms, apply_fallback=False,
            )
            if last.status == ExecutionStatus.CANCELLED:
                return last
            if last.success:
                last.data = {"channel": channel.channel, "result": last.data, "failed_channels": failed}
                if failed:
                    last.fallback_used = FallbackStrategy.ALTERNATIVE_TOOL
                    last.substituted_tool = channel.tool_name
                return last
            logger.warning(f"Notification via {channel.channel} failed: {last.error}")
            failed.append(channel.channel)

        return ToolExecutionResult(
            tool_name="notify",
            status=ExecutionStatus.FAILED,
            error="All notification channels failed",
            error_category=last.error_category if last else ErrorCategory.PERMANENT_SYSTEM,
            data={"failed_channels": failed},
            escalation_required=True,
        )

    async def compensate(
        self,
        tool_name: str,
        input: Optional[Dict[str, Any]],
        context: CallerContext,
    ) -> ToolExecutionResult:
        """Run a compensating action once: timeout and circuit checks apply, retries and fallback do not."""
        return await self._execute(
            tool_name, dict(input or {}), context, None, None,
            allow_alternative=False, apply_fallback=False, allow_retry=False,
        )

    async def process_deferred(self, at_ms: Optional[int] = None) -> List[ToolExecutionResult]:
        """Re-run every deferred call whose retry time has arrived."""
        results = []
        for call in self.deferred.pop_due(at_ms):
            logger.info(f"Retrying deferred call {call.id} ({call.tool_name}, attempt {call.attempts})")
            results.append(await self.execute(call.tool_name, call.input, call.caller_context()))
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute(
        self,
        tool_name: str,
        input: Dict[str, Any],
        context: CallerContext,
        cancel_event: Optional[asyncio.Event],
        timeout_ms: Optional[int],
        allow_alternative: bool = True,
        apply_fallback: bool = True,
        allow_retry: bool = True,
        allow_defer: bool = True,
    ) -> ToolExecutionResult:
        start = self._clock()
        try:
            tool = self.catalog.get(tool_name)
        except UnknownToolError as e:
            result = ToolExecutionResult(
                tool_name=tool_name,
                status=ExecutionStatus.FAILED,
                error=str(e),
                error_category=ErrorCategory.PERMANENT_LOGIC,
            )
            self._audit(context, input, result)
            return result

        policy = self.policies.get_policy(tool.resilience_policy)

        if policy.idempotency.required:
            key = compute_idempotency_key(
                tool.name, context.owner_id, input, policy.idempotency.key_fields
            )
            async with self.idempotency.claim(key) as claim:
                if claim.record is not None:
                    logger.info(f"Idempotent replay for {tool.name} ({key})")
                    result = ToolExecutionResult(
                        tool_name=tool.name,
                        status=ExecutionStatus.SUCCEEDED,
                        data=claim.record.result(),
                        idempotency_key=key,
                        idempotent_replay=True,
                    )
                else:
                    result = await self._run(
                        tool, policy, input, context, cancel_event, timeout_ms,
                        allow_alternative, apply_fallback, allow_retry, allow_defer,
                    )
                    result.idempotency_key = key
                    if result.success and result.fallback_used is None:
                        record = await claim.store(tool.name, result.data, policy.idempotency.ttl_seconds)
                        result.data = record.result()
        else:
            result = await self._run(
                tool, policy, input, context, cancel_event, timeout_ms,
                allow_alternative, apply_fallback, allow_retry, allow_defer,
            )

        result.duration_ms = self._clock() - start
        self._audit(context, input, result)
        return result

    async def _run(
        self,
        tool: ToolDefinition,
        policy: ResiliencePolicy,
        input: Dict[str, Any],
        context: CallerContext,
        cancel_event: Optional[asyncio.Event],
        timeout_ms: Optional[int],
        allow_alternative: bool,
        apply_fallback: bool,
        allow_retry: bool,
        allow_defer: bool,
    ) -> ToolExecutionResult:
        retry = policy.retry
        timeout = timeout_ms or policy.timeout_ms
        max_attempts = max(1, retry.max_attempts) if allow_retry else 1
        attempts = 0
        circuit_state: Optional[CircuitState] = None
        circuit_triggered = False
        last = _Attempt(error="Tool was not attempted", category=ErrorCategory.TRANSIENT)

        for attempt_index in range(max_attempts):
            if cancel_event is not None and cancel_event.is_set():
                return self._cancelled(tool, attempts, circuit_state)

            if tool.service:
                try:
                    circuit_state = await self.breakers.before_call(tool.service)
                except CircuitOpenError as e:
                    logger.warning(f"Fail-fast for {tool.name}: {e}")
                    circuit_state = CircuitState.OPEN
                    circuit_triggered = True
                    last = _Attempt(error=str(e), category=ErrorCategory.TRANSIENT)
                    break

            attempts += 1
            last = await self._attempt(tool, input, context, timeout, cancel_event)

            if last.cancelled:
                if tool.service:
                    await self.breakers.release_probe(tool.service)
                return self._cancelled(tool, attempts, circuit_state)

            if tool.service:
                if last.success or not last.category.trips_circuit:
                    # The service answered; a logic error is not an outage
                    await self.breakers.record_success(tool.service)
                else:
                    await self.breakers.record_failure(tool.service)
                circuit_state = self.breakers.get_status(tool.service).state

            if last.success:
                if policy.fallback and policy.fallback.strategy == FallbackStrategy.CACHE:
                    self.cache.put(self._cache_key(tool, context, input), last.data)
                return ToolExecutionResult(
                    tool_name=tool.name,
                    status=ExecutionStatus.SUCCEEDED,
                    data=last.data,
                    attempts=attempts,
                    circuit_state=circuit_state,
                )

            if attempt_index < max_attempts - 1 and retry.is_retryable(last.category):
                delay_ms = retry.delay_ms(attempt_index, self._rng())
                logger.info(
                    f"Retrying {tool.name} in {delay_ms}ms "
                    f"(attempt {attempts}/{max_attempts}, {last.category.value}: {last.error})"
                )
                if await self._wait(delay_ms, cancel_event):
                    return self._cancelled(tool, attempts, circuit_state)
                continue
            break

        result = ToolExecutionResult(
            tool_name=tool.name,
            status=ExecutionStatus.TIMED_OUT if last.timed_out else ExecutionStatus.FAILED,
            error=last.error,
            error_category=last.category,
            attempts=attempts,
            circuit_state=circuit_state,
            circuit_breaker_triggered=circuit_triggered,
        )
        return await self._on_failure(
            tool, policy, input, context, result, cancel_event, allow_alternative, apply_fallback,
            allow_defer,
        )

    async def _attempt(
        self,
        tool: ToolDefinition,
        input: Dict[str, Any],
        context: CallerContext,
        timeout_ms: int,
        cancel_event: Optional[asyncio.Event],
    ) -> _Attempt:
        """Race one handler call against its deadline and the cancel signal."""
        task = asyncio.ensure_future(self.handler.execute(tool.name, dict(input), context))
        waiters = {task}
        canceller = None
        if cancel_event is not None:
            canceller = asyncio.ensure_future(cancel_event.wait())
            waiters.add(canceller)
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout_ms / 1000, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            task.add_done_callback(_drain)
            raise
        finally:
            if canceller is not None and not canceller.done():
                canceller.cancel()

        if task not in done:
            # Best-effort cancellation; the handler may still finish in the background
            task.cancel()
            task.add_done_callback(_drain)
            if canceller is not None and canceller in done:
                return _Attempt(cancelled=True, error="Cancelled by caller")
            return _Attempt(
                error=f"Tool '{tool.name}' timed out after {timeout_ms}ms",
                category=ErrorCategory.TRANSIENT,
                timed_out=True,
            )

        try:
            envelope = task.result()
        except asyncio.CancelledError:
            return _Attempt(error=f"Handler for '{tool.name}' was cancelled", category=ErrorCategory.TRANSIENT)
        except Exception as e:
            category = classify_exception(e)
            logger.warning(f"Handler for {tool.name} raised {type(e).__name__}: {e} ({category.value})")
            return _Attempt(error=str(e) or type(e).__name__, category=category)

        result = ToolResult.from_envelope(envelope)
        if result.success:
            return _Attempt(success=True, data=result.data)
        return _Attempt(error=result.error or "Tool reported failure", category=classify_result(result))

    async def _wait(self, delay_ms: int, cancel_event: Optional[asyncio.Event]) -> bool:
        """Back off for ``delay_ms``. Returns True if cancelled meanwhile."""
        sleeper = asyncio.ensure_future(self._sleep(delay_ms / 1000))
        if cancel_event is None:
            await sleeper
            return False
        canceller = asyncio.ensure_future(cancel_event.wait())
        done, _ = await asyncio.wait({sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED)
        for pending in (sleeper, canceller):
            if not pending.done():
                pending.cancel()
        return canceller in done

    async def _on_failure(
        self,
        tool: ToolDefinition,
        policy: ResiliencePolicy,
        input: Dict[str, Any],
        context: CallerContext,
        result: ToolExecutionResult,
        cancel_event: Optional[asyncio.Event],
        allow_alternative: bool,
        apply_fallback: bool,
        allow_defer: bool = True,
    ) -> ToolExecutionResult:
        category = result.error_category
        if category == ErrorCategory.SAFETY_HALT:
            result.safety_halt = True
            logger.error(f"SAFETY HALT from {tool.name} for owner {context.owner_id}: {result.error}")
            return result
        if category == ErrorCategory.USER_ACTION_REQUIRED:
            result.escalation_required = True
            return result
        if category == ErrorCategory.PERMANENT_SYSTEM:
            logger.error(f"Permanent system failure in {tool.name}: {result.error}")
            if self.audit is not None:
                self.audit.log_operator_alert(
                    tool_name=tool.name,
                    owner_id=context.owner_id,
                    error=result.error or "",
                    error_category=category.value,
                )
        if not category.allows_fallback or not apply_fallback or policy.fallback is None:
            return result
        return await self._apply_fallback(
            tool, policy, input, context, result, cancel_event, allow_alternative,
            allow_defer,
        )

    async def _apply_fallback(
        self,
        tool: ToolDefinition,
        policy: ResiliencePolicy,
        input: Dict[str, Any],
        context: CallerContext,
        result: ToolExecutionResult,
        cancel_event: Optional[asyncio.Event],
        allow_alternative: bool,
        allow_defer: bool = True,
    ) -> ToolExecutionResult:
        fallback = policy.fallback
        strategy = fallback.strategy

        if strategy == FallbackStrategy.CACHE:
            cached = self.cache.get(self._cache_key(tool, context, input), fallback.cache_max_age_ms)
            if cached is None:
                logger.info(f"No usable cached result for {tool.name}")
                return result
            result.status = ExecutionStatus.SUCCEEDED
            result.data = cached.data
            result.cache_age_ms = cached.age_ms
            result.fallback_used = FallbackStrategy.CACHE
            return result

        if strategy == FallbackStrategy.QUEUE:
            if not allow_defer:
                logger.info(f"Not deferring {tool.name}; the caller handles the failure")
                return result
            call = self.deferred.enqueue(
                tool.name, input, context,
                fallback.queue_retry_after_ms or 300_000,
                reason=result.error or "",
            )
            if call is None:
                result.escalation_required = True
                result.fallback_used = FallbackStrategy.MANUAL_ESCALATION
                return result
            result.status = ExecutionStatus.DEFERRED
            result.deferred_id = call.id
            result.fallback_used = FallbackStrategy.QUEUE
            return result

        if strategy == FallbackStrategy.ALTERNATIVE_TOOL:
            if not allow_alternative or not fallback.alternative_tool:
                return result
            alternative = await self._execute(
                fallback.alternative_tool, input, context, cancel_event, None,
                allow_alternative=False, allow_defer=allow_defer,
            )
            result.fallback_used = FallbackStrategy.ALTERNATIVE_TOOL
            result.substituted_tool = fallback.alternative_tool
            if alternative.success:
                result.status = ExecutionStatus.SUCCEEDED
                result.data = alternative.data
            return result

        if strategy == FallbackStrategy.MANUAL_ESCALATION:
            result.escalation_required = True
            result.fallback_used = FallbackStrategy.MANUAL_ESCALATION
            return result

        if strategy == FallbackStrategy.SKIP:
            result.status = ExecutionStatus.SUCCEEDED
            result.data = None
            result.skipped = True
            result.fallback_used = FallbackStrategy.SKIP
            return result

        raise ValueError(f"Unhandled fallback strategy: {strategy}")

    @staticmethod
    def _cache_key(tool: ToolDefinition, context: CallerContext, input: Dict[str, Any]) -> str:
        return compute_idempotency_key(tool.name, context.owner_id, input)

    @staticmethod
    def _cancelled(
        tool: ToolDefinition, attempts: int, circuit_state: Optional[CircuitState]
    ) -> ToolExecutionResult:
        logger.info(f"Call to {tool.name} cancelled after {attempts} attempt(s)")
        return ToolExecutionResult(
            tool_name=tool.name,
            status=ExecutionStatus.CANCELLED,
            error="Cancelled by caller",
            attempts=attempts,
            circuit_state=circuit_state,
        )

    def _audit(self, context: CallerContext, input: Dict[str, Any], result: ToolExecutionResult) -> None:
        if self.audit is None:
            return
        self.audit.log_tool_execution(
            owner_id=context.owner_id,
            result=result,
            args_summary=sorted(input),
            workflow_id=context.workflow_id,
            task_name=context.task_name,
        )
