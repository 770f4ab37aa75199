"""
Steward Application - Single entry point for the orchestration engine.

Usage:
    from steward import Steward

    app = Steward("config.yaml", handler=my_tool_handler, owners=my_owner_directory)
    await app.initialize()

    outcome = await app.submit_tool_call("get_arrears", {"property_id": "p1"}, CallerContext(owner_id="own_1"))
    if outcome.status == CallStatus.PENDING_APPROVAL:
        await app.resolve_pending(outcome.pending_action.id, "approve")

    await app.close()
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from .autonomy.gate import AutonomyGate
from .autonomy.graduation import GraduationTracker
from .autonomy.models import AutonomySettings, OwnerProfile
from .checkpoint.storage import CheckpointStorage, MemoryStorage
from .clock import Clock, now_ms
from .confidence.calibrator import ConfidenceCalibrator
from .confidence.history import InMemoryHistory
from .config import EngineConfig, load_config
from .db.database import redact_dsn
from .orchestrator.approval import ApprovalDecision, ApprovalQueue, PendingAction, PendingActionStatus
from .orchestrator.audit_logger import AuditLogger
from .orchestrator.context_manager import ContextWindowManager
from .orchestrator.pipeline import CallOutcome, ToolCallPipeline
from .resilience.executor import ResilientToolExecutor
from .resilience.idempotency import IdempotencyGuard, IdempotencyStore, MemoryIdempotencyStore
from .resilience.policies import ResiliencePolicyStore
from .tools.catalog import ToolCatalog
from .tools.models import CallerContext
from .triggers.models import BackgroundTaskResult
from .triggers.scheduler import BackgroundTaskScheduler
from .workflow.builtin import BUILTIN_WORKFLOWS
from .workflow.engine import WorkflowEngine
from .workflow.loader import WorkflowLoader
from .workflow.models import GateSignal, WorkflowRunResult

if TYPE_CHECKING:
    from .db import Database
    from .protocols import (
        ApprovalChannelProtocol,
        HistoryProviderProtocol,
        OwnerDirectoryProtocol,
        ToolHandlerProtocol,
    )
    from .triggers.event_bus import EventBus

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResolution:
    """Result of an owner decision: the call outcome, plus the workflow it unblocked if any."""
    call: CallOutcome
    workflow: Optional[WorkflowRunResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "call": self.call.to_dict(),
            "workflow": self.workflow.to_dict() if self.workflow else None,
        }


class Steward:
    """
    Steward Application entry point.

    The sync constructor reads config and wires the in-memory engine;
    ``initialize()`` connects the optional PostgreSQL stores and Redis
    event bus. Public calls initialize lazily if needed.

    Args:
        config: Path to a YAML config file, an EngineConfig, or None for defaults
        handler: Tool handler; required unless ``tool_service_url`` is configured
        history: Historical data source for confidence calibration
        owners: Owner directory used by the background scheduler
        channel: Outbound approval channel
        catalog: Tool catalog; defaults to the built-in catalog (plus ``catalog_path``)
    """

    def __init__(
        self,
        config: Union[str, EngineConfig, None] = None,
        handler: Optional["ToolHandlerProtocol"] = None,
        history: Optional["HistoryProviderProtocol"] = None,
        owners: Optional["OwnerDirectoryProtocol"] = None,
        channel: Optional["ApprovalChannelProtocol"] = None,
        catalog: Optional[ToolCatalog] = None,
        clock: Optional[Clock] = None,
    ):
        if isinstance(config, str):
            config = load_config(config)
        self._config = config or EngineConfig()
        self._clock = clock or now_ms
        self._initialized = False
        self._owns_handler = False

        if handler is None:
            if not self._config.tool_service_url:
                raise ValueError("A tool handler or 'tool_service.url' config is required")
            from .tools.http_handler import HttpToolHandler
            handler = HttpToolHandler(self._config.tool_service_url)
            self._owns_handler = True
        self._handler = handler

        if catalog is None:
            catalog = (
                ToolCatalog.from_yaml(self._config.catalog_path)
                if self._config.catalog_path else ToolCatalog.builtin()
            )
        self.catalog = catalog

        # Will be set during initialization
        self._database: Optional["Database"] = None
        self._event_bus: Optional["EventBus"] = None

        self.audit = AuditLogger()
        self.history = history or InMemoryHistory(clock=self._clock)
        self.graduation = GraduationTracker(threshold=self._config.graduation_threshold, clock=self._clock)
        self.gate = AutonomyGate(self.graduation, auto_execute_level=self._config.auto_execute_level)
        self.calibrator = ConfidenceCalibrator(self.history)
        self.approvals = ApprovalQueue(ttl_ms=self._config.pending_action_ttl_ms, clock=self._clock)
        self.policies = ResiliencePolicyStore()
        self.context_manager = ContextWindowManager(self._config.context_token_budget)
        self.channel = channel

        self.loader = WorkflowLoader(catalog=self.catalog)
        self.loader.register_all(BUILTIN_WORKFLOWS)
        if self._config.workflows_path:
            self.loader.load_from_directory(self._config.workflows_path)

        self._build_engine(MemoryIdempotencyStore(), MemoryStorage())
        self.scheduler = BackgroundTaskScheduler(
            self.pipeline,
            owners=owners,
            audit=self.audit,
            timezone=self._config.timezone,
            clock=self._clock,
            workflows=self.workflows,
        )

    def _build_engine(self, idempotency_store: IdempotencyStore, checkpoints: CheckpointStorage) -> None:
        self.executor = ResilientToolExecutor(
            self.catalog,
            self._handler,
            policies=self.policies,
            idempotency=IdempotencyGuard(idempotency_store, clock=self._clock),
            audit=self.audit,
            clock=self._clock,
        )
        self.pipeline = ToolCallPipeline(
            self.executor,
            self.gate,
            self.graduation,
            self.calibrator,
            self.history,
            self.approvals,
            channel=self.channel,
            audit=self.audit,
            low_confidence_threshold=self._config.low_confidence_threshold,
        )
        self.workflows = WorkflowEngine(
            self.executor,
            storage=checkpoints,
            loader=self.loader,
            approvals=self.approvals,
            channel=self.channel,
            audit=self.audit,
            clock=self._clock,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, start_scheduler: bool = False) -> None:
        """Connect persistent stores and the event bus. Safe to call twice."""
        if self._initialized:
            return

        cfg = self._config
        if cfg.database:
            from .checkpoint.postgres_storage import PostgreSQLCheckpointStorage
            from .db import Database
            from .resilience.idempotency import PostgreSQLIdempotencyStore

            self._database = Database(dsn=cfg.database)
            await self._database.initialize()

            checkpoints = PostgreSQLCheckpointStorage(db=self._database)
            await checkpoints.initialize()
            idempotency = PostgreSQLIdempotencyStore(db=self._database)
            await idempotency.initialize()

            self._build_engine(idempotency, checkpoints)
            self.scheduler.pipeline = self.pipeline
            self.scheduler.workflows = self.workflows
            logger.info("PostgreSQL checkpoint and idempotency stores initialized")

        # EventBus (Redis Streams), optional, requires redis config
        if cfg.redis_url:
            from .triggers.event_bus import EventBus

            self._event_bus = EventBus(redis_url=cfg.redis_url, source=cfg.event_source)
            await self._event_bus.initialize()
            await self.scheduler.attach_event_bus(self._event_bus, source=cfg.event_source)
            await self.workflows.attach_event_bus(self._event_bus, source=cfg.event_source)
            logger.info(f"EventBus initialized (redis: {redact_dsn(cfg.redis_url)})")

        if start_scheduler:
            await self.scheduler.start()

        self._initialized = True
        logger.info("Steward initialized")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def close(self) -> None:
        """Shut down the application, closing all connections."""
        if not self._initialized:
            return
        try:
            await self.scheduler.stop()
            if self._event_bus:
                await self._event_bus.close()
            if self._database:
                await self._database.close()
            if self._owns_handler:
                await self._handler.close()
        except Exception as e:
            logger.warning(f"Error during shutdown: {e}")
        finally:
            self._initialized = False
            self._event_bus = None
            self._database = None
            logger.info("Steward shut down")

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def event_bus(self) -> Optional["EventBus"]:
        return self._event_bus

    # ------------------------------------------------------------------
    # Tool calls and approvals
    # ------------------------------------------------------------------

    async def submit_tool_call(
        self,
        tool_name: str,
        input: Optional[Dict[str, Any]],
        context: CallerContext,
        settings: Optional[AutonomySettings] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CallOutcome:
        """Gate, calibrate, then execute or queue one tool call."""
        await self._ensure_initialized()
        return await self.pipeline.submit(tool_name, input, context, settings, cancel_event)

    def list_pending(self, owner_id: Optional[str] = None) -> List[PendingAction]:
        return self.approvals.list_pending(owner_id)

    async def resolve_pending(
        self,
        action_id: str,
        decision: Union[str, ApprovalDecision],
        modified_params: Optional[Dict[str, Any]] = None,
    ) -> ApprovalResolution:
        """
        Apply an owner decision.

        A decision on a workflow gate also resumes (or, on reject, cancels
        and compensates) the workflow instance waiting on it.

        Raises:
            ApprovalError: If the action is unknown, already resolved or expired
            WorkflowStateError, CheckpointExpiredError: The workflow could not take
                the decision; the action is left as it was
        """
        await self._ensure_initialized()
        decision = ApprovalDecision(decision)
        action = self.approvals.check(action_id, decision, modified_params)
        if action.workflow_id is None:
            call = await self.pipeline.resolve_pending(action_id, decision, modified_params)
            return ApprovalResolution(call=call)

        # The action stays pending until the workflow has taken the signal
        workflow = await self.workflows.resume(
            action.workflow_id,
            GateSignal.approval(decision.value, modified_params),
        )
        if action.status == PendingActionStatus.PENDING:
            self.approvals.resolve(action.id, decision, modified_params)
        call = await self.pipeline.record_decision(action, decision)
        return ApprovalResolution(call=call, workflow=workflow)

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def start_workflow(
        self,
        workflow_name: str,
        context: CallerContext,
        initial_context: Optional[Dict[str, Any]] = None,
        maturity_level: Optional[int] = None,
    ) -> WorkflowRunResult:
        await self._ensure_initialized()
        return await self.workflows.start(workflow_name, context, initial_context, maturity_level)

    async def resume_workflow(self, workflow_id: str, signal: GateSignal) -> WorkflowRunResult:
        await self._ensure_initialized()
        return await self.workflows.resume(workflow_id, signal)

    async def cancel_workflow(self, workflow_id: str, reason: str = "Cancelled by owner") -> WorkflowRunResult:
        await self._ensure_initialized()
        return await self.workflows.cancel(workflow_id, reason)

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def run_task(
        self,
        task_name: str,
        owner: OwnerProfile,
        payload: Optional[Dict[str, Any]] = None,
    ) -> BackgroundTaskResult:
        await self._ensure_initialized()
        return await self.scheduler.run_task(task_name, owner, payload)

    async def handle_event(
        self,
        event_name: str,
        payload: Optional[Dict[str, Any]] = None,
        owner_id: Optional[str] = None,
    ) -> List[BackgroundTaskResult]:
        await self._ensure_initialized()
        return await self.scheduler.handle_event(event_name, payload, owner_id)

    # ------------------------------------------------------------------
    # Context window
    # ------------------------------------------------------------------

    def compact_context(
        self,
        messages: List[Dict[str, Any]],
        token_budget: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return self.context_manager.compact(messages, token_budget)
