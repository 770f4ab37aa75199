"""BackgroundTaskScheduler: runs background tasks for every eligible owner.

Cron tasks fire from a timer loop that sleeps until the next task is due
(capped at 60s). Event tasks fire from ``handle_event`` or from an
EventBus subscription. Either way each tool call goes through the same
ToolCallPipeline as an interactive call, under a synthetic non-interactive
caller context whose autonomy is capped at the task's default.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..autonomy.models import OwnerProfile
from ..clock import Clock, now_ms
from ..constants import DEFAULT_TIMEZONE
from ..orchestrator.pipeline import CallStatus, ToolCallPipeline
from ..tools.models import CallerContext
from .builtin import BUILTIN_TASKS
from .models import BackgroundTaskDefinition, BackgroundTaskResult, TaskCall, TriggerType
from .schedule import next_fire_ms, resolve_timezone

if TYPE_CHECKING:
    from ..orchestrator.audit_logger import AuditLogger
    from ..protocols import OwnerDirectoryProtocol
    from ..workflow.engine import WorkflowEngine
    from .event_bus import Event, EventBus

logger = logging.getLogger(__name__)

# Maximum sleep interval before checking again
MAX_SLEEP_S = 60.0

# Minimum sleep to avoid busy-spin
MIN_SLEEP_S = 0.1

# Produces the calls a task makes for one owner and one trigger payload
TaskPlanner = Callable[
    [BackgroundTaskDefinition, OwnerProfile, Dict[str, Any]],
    Awaitable[List[TaskCall]],
]


async def default_planner(
    task: BackgroundTaskDefinition,
    owner: OwnerProfile,
    payload: Dict[str, Any],
) -> List[TaskCall]:
    """Call each declared tool once, in order, with the trigger payload."""
    return [TaskCall(tool_name=name, input=dict(payload)) for name in task.tools_used]


class BackgroundTaskScheduler:
    """
    Background task registry, runner and timer loop.

    Usage:
        scheduler = BackgroundTaskScheduler(pipeline, owners=directory)
        await scheduler.start()
        ...
        await scheduler.handle_event("payment_failed", {"payment_id": "p1"}, owner_id="own_1")
        await scheduler.stop()
    """

    def __init__(
        self,
        pipeline: ToolCallPipeline,
        owners: Optional["OwnerDirectoryProtocol"] = None,
        tasks: Optional[Iterable[BackgroundTaskDefinition]] = None,
        planners: Optional[Dict[str, TaskPlanner]] = None,
        audit: Optional["AuditLogger"] = None,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Optional[Clock] = None,
        workflows: Optional["WorkflowEngine"] = None,
    ):
        self.pipeline = pipeline
        self.owners = owners
        self.audit = audit
        self.workflows = workflows
        self.timezone = timezone
        resolve_timezone(timezone)  # fail fast on a bad zone name
        self._clock = clock or now_ms
        self._tasks: Dict[str, BackgroundTaskDefinition] = {}
        self._planners: Dict[str, TaskPlanner] = dict(planners or {})
        self._next_run_at_ms: Dict[str, int] = {}
        self._running_tasks: Dict[str, int] = {}
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()

        for task in BUILTIN_TASKS if tasks is None else tasks:
            self.register(task)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, task: BackgroundTaskDefinition, planner: Optional[TaskPlanner] = None) -> None:
        """Register (or replace) a task definition."""
        errors = task.validate()
        if task.trigger_type == TriggerType.CRON and task.cron_expression:
            try:
                next_run = next_fire_ms(task.cron_expression, self._clock(), self.timezone)
            except ValueError as e:
                errors.append(str(e))
        if errors:
            raise ValueError(f"Invalid background task {task.name}: {'; '.join(errors)}")

        self._tasks[task.name] = task
        if planner is not None:
            self._planners[task.name] = planner
        if task.trigger_type == TriggerType.CRON:
            self._next_run_at_ms[task.name] = next_run
        self._reschedule()
        logger.debug(f"Registered background task {task.name}")

    def unregister(self, name: str) -> bool:
        self._next_run_at_ms.pop(name, None)
        self._planners.pop(name, None)
        return self._tasks.pop(name, None) is not None

    def get(self, name: str) -> Optional[BackgroundTaskDefinition]:
        return self._tasks.get(name)

    def list_tasks(self, trigger_type: Optional[TriggerType] = None) -> List[BackgroundTaskDefinition]:
        return [
            task for task in self._tasks.values()
            if trigger_type is None or task.trigger_type == trigger_type
        ]

    def tasks_for_event(self, event_name: str) -> List[BackgroundTaskDefinition]:
        return [
            task for task in self._tasks.values()
            if task.trigger_type == TriggerType.EVENT and task.event_name == event_name
        ]

    def next_run_at(self, name: str) -> Optional[int]:
        return self._next_run_at_ms.get(name)

    # ------------------------------------------------------------------
    # Running tasks
    # ------------------------------------------------------------------

    async def run_task(
        self,
        task_name: str,
        owner: OwnerProfile,
        payload: Optional[Dict[str, Any]] = None,
        trigger: str = "manual",
    ) -> BackgroundTaskResult:
        """
        Run one task for one owner.

        Owners below the task's maturity level are skipped. Every planned
        call is submitted through the pipeline; calls to tools the task did
        not declare are refused and recorded as errors.

        Raises:
            KeyError: If the task is not registered
        """
        task = self._tasks.get(task_name)
        if task is None:
            raise KeyError(f"Unknown background task: {task_name}")

        started = self._clock()
        result = BackgroundTaskResult(
            task_name=task_name,
            owner_id=owner.owner_id,
            trigger=trigger,
            started_at_ms=started,
        )

        if owner.maturity_level < task.available_from_level:
            result.skipped = True
            result.skip_reason = (
                f"Owner maturity level {owner.maturity_level} is below "
                f"required level {task.available_from_level}"
            )
            logger.debug(f"Skipping {task_name} for {owner.owner_id}: {result.skip_reason}")
            return result

        context = CallerContext.for_background_task(
            owner_id=owner.owner_id,
            tier=owner.tier.value,
            task_name=task_name,
            autonomy_cap=task.default_autonomy,
        )
        planner = self._planners.get(task_name, default_planner)

        self._running_tasks[task_name] = self._running_tasks.get(task_name, 0) + 1
        try:
            calls = await planner(task, owner, dict(payload or {}))
            for call in calls:
                if call.tool_name not in task.tools_used:
                    result.errors.append(f"{call.tool_name}: not declared by task {task_name}")
                    logger.warning(f"Task {task_name} tried undeclared tool {call.tool_name}")
                    continue

                outcome = await self.pipeline.submit(
                    call.tool_name, call.input, context, settings=owner.settings
                )
                result.outcomes.append(outcome)
                if outcome.status == CallStatus.PENDING_APPROVAL:
                    result.pending_actions.append(outcome.pending_action.id)
                elif outcome.status == CallStatus.DENIED:
                    result.denied.append(call.tool_name)
                elif outcome.success:
                    result.executed.append(call.tool_name)
                else:
                    result.errors.append(f"{call.tool_name}: {outcome.error}")
        except Exception as e:
            logger.error(f"Background task {task_name} failed for {owner.owner_id}: {e}", exc_info=True)
            result.errors.append(str(e))
        finally:
            self._running_tasks[task_name] -= 1
            if not self._running_tasks[task_name]:
                del self._running_tasks[task_name]

        result.duration_ms = self._clock() - started
        if self.audit is not None:
            self.audit.log_background_task(
                owner.owner_id,
                task_name,
                success=result.success,
                duration_ms=result.duration_ms,
                outputs={
                    "executed": result.executed,
                    "pending_actions": result.pending_actions,
                    "denied": result.denied,
                },
                error="; ".join(result.errors) or None,
            )
        logger.info(
            f"Task {task_name} for {owner.owner_id}: {len(result.executed)} executed, "
            f"{len(result.pending_actions)} pending, {len(result.errors)} errors"
        )
        return result

    async def run_for_all_owners(
        self,
        task_name: str,
        payload: Optional[Dict[str, Any]] = None,
        trigger: str = "manual",
    ) -> List[BackgroundTaskResult]:
        """Run a task for every owner the directory knows about."""
        if self.owners is None:
            logger.warning(f"No owner directory configured; {task_name} has nobody to run for")
            return []
        owners = await self.owners.list_owners()
        results = await asyncio.gather(
            *(self.run_task(task_name, owner, payload, trigger) for owner in owners)
        )
        return list(results)

    async def handle_event(
        self,
        event_name: str,
        payload: Optional[Dict[str, Any]] = None,
        owner_id: Optional[str] = None,
    ) -> List[BackgroundTaskResult]:
        """
        Fire every task bound to a named event.

        With ``owner_id`` the tasks run for that owner only; otherwise for
        every owner in the directory.
        """
        tasks = self.tasks_for_event(event_name)
        if not tasks:
            logger.debug(f"No background tasks bound to event {event_name}")
            return []

        trigger = f"event:{event_name}"
        results: List[BackgroundTaskResult] = []
        if owner_id:
            owner = await self._lookup_owner(owner_id)
            if owner is None:
                logger.warning(f"Event {event_name} for unknown owner {owner_id}")
                return []
            for task in tasks:
                results.append(await self.run_task(task.name, owner, payload, trigger))
        else:
            for task in tasks:
                results.extend(await self.run_for_all_owners(task.name, payload, trigger))
        return results

    async def attach_event_bus(self, bus: "EventBus", source: str = "steward") -> None:
        """Subscribe to every event name a registered task listens for."""
        event_names = sorted({
            task.event_name for task in self.list_tasks(TriggerType.EVENT) if task.event_name
        })

        async def _on_event(event: "Event") -> None:
            await self.handle_event(event.event_type, event.data, owner_id=event.owner_id or None)

        for event_name in event_names:
            await bus.subscribe(f"{source}:{event_name}", _on_event)
        logger.info(f"Attached event bus for {len(event_names)} event(s) from {source}")

    async def _lookup_owner(self, owner_id: str) -> Optional[OwnerProfile]:
        if self.owners is None:
            return None
        return await self.owners.get_owner(owner_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the timer loop."""
        if self._running:
            return

        now = self._clock()
        for task in self.list_tasks(TriggerType.CRON):
            self._next_run_at_ms[task.name] = next_fire_ms(task.cron_expression, now, self.timezone)

        self._running = True
        self._loop_task = asyncio.create_task(self._timer_loop())
        logger.info(f"BackgroundTaskScheduler started ({len(self._tasks)} tasks, tz={self.timezone})")

    async def stop(self) -> None:
        """Stop the timer loop."""
        self._running = False
        self._wake.set()  # wake the loop so it can exit
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("BackgroundTaskScheduler stopped")

    def status(self) -> Dict[str, Any]:
        """Return scheduler status summary."""
        next_due = self._next_due_time()
        now = self._clock()
        return {
            "running": self._running,
            "timezone": self.timezone,
            "total_tasks": len(self._tasks),
            "cron_tasks": len(self._next_run_at_ms),
            "event_tasks": len(self.list_tasks(TriggerType.EVENT)),
            "running_tasks": sorted(self._running_tasks),
            "next_due_at_ms": next_due,
            "next_due_in_seconds": (
                max(0, (next_due - now) / 1000) if next_due else None
            ),
        }

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    async def _timer_loop(self) -> None:
        """Main scheduler loop: sleep until next due task, then fire."""
        while self._running:
            try:
                await self._tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Scheduler tick error: {e}", exc_info=True)
                await asyncio.sleep(1)  # brief recovery pause

    async def _tick(self) -> None:
        """Single timer tick: compute sleep, wait, fire due tasks."""
        next_due = self._next_due_time()

        if next_due is not None:
            delay_ms = next_due - self._clock()
            sleep_s = max(MIN_SLEEP_S, min(delay_ms / 1000, MAX_SLEEP_S))
        else:
            sleep_s = MAX_SLEEP_S

        # Sleep, but wake immediately if _wake event is set
        self._wake.clear()
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=sleep_s)
        except asyncio.TimeoutError:
            pass

        if not self._running:
            return

        await self.run_due()

    async def run_due(self, at_ms: Optional[int] = None) -> List[BackgroundTaskResult]:
        """
        Fire every cron task due at ``at_ms`` and do periodic housekeeping.

        Housekeeping retries deferred tool calls whose time has come,
        expires stale pending actions and expires paused workflows past
        their resume window.
        """
        now = self._clock() if at_ms is None else at_ms
        due = [
            name for name, next_run in self._next_run_at_ms.items()
            if next_run <= now and name not in self._running_tasks
        ]

        results: List[BackgroundTaskResult] = []
        if due:
            logger.info(f"Firing {len(due)} due background task(s)")
            # Advance before running so a slow run cannot fire twice
            for name in due:
                task = self._tasks[name]
                self._next_run_at_ms[name] = next_fire_ms(task.cron_expression, now, self.timezone)
            batches = await asyncio.gather(*(self._safe_run(name) for name in due))
            for batch in batches:
                results.extend(batch)

        await self._housekeeping(now)
        return results

    async def _safe_run(self, task_name: str) -> List[BackgroundTaskResult]:
        """Run a task for all owners with error isolation."""
        try:
            return await self.run_for_all_owners(task_name, trigger="cron")
        except Exception as e:
            logger.error(f"Background task {task_name} execution error: {e}", exc_info=True)
            return []

    async def _housekeeping(self, now: int) -> None:
        try:
            await self.pipeline.executor.process_deferred(now)
        except Exception as e:
            logger.error(f"Deferred retry processing failed: {e}", exc_info=True)

        for action in self.pipeline.approvals.expire_stale():
            if self.audit is not None:
                self.audit.log_pending_action(action)

        if self.workflows is not None:
            try:
                await self.workflows.expire_stale()
            except Exception as e:
                logger.error(f"Workflow expiry sweep failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _next_due_time(self) -> Optional[int]:
        return min(self._next_run_at_ms.values()) if self._next_run_at_ms else None

    def _reschedule(self) -> None:
        """Wake the timer loop to recalculate sleep."""
        self._wake.set()
