"""
Steward EventBus: Redis Streams transport for domain events.

Two kinds of event travel on the bus, both on the stream of the source
that emitted them (``steward:events:<source>``):

    task triggers     "steward:payment_failed", "steward:maintenance_created"
                      picked up by BackgroundTaskScheduler.attach_event_bus
                      and run as the event's owner
    workflow webhooks "steward:workflow_webhook" carrying a workflow_id
                      picked up by WorkflowEngine.attach_event_bus and
                      delivered to the paused instance as a webhook signal

Every event is scoped to a single owner. Subscriptions are per source;
a pattern without a concrete source would have no stream to read.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

STEWARD_SOURCE = "steward"
WORKFLOW_WEBHOOK = "workflow_webhook"


@dataclass
class Event:
    """A domain event, scoped to one owner."""
    source: str
    event_type: str  # task trigger name, or WORKFLOW_WEBHOOK
    data: Dict[str, Any] = field(default_factory=dict)
    owner_id: str = ""
    timestamp: Optional[str] = None  # ISO format, set on publish
    workflow_id: Optional[str] = None  # only on workflow webhooks
    event_id: Optional[str] = None  # stream entry id, set on delivery

    @property
    def key(self) -> str:
        return f"{self.source}:{self.event_type}"

    @classmethod
    def task_trigger(
        cls,
        event_name: str,
        owner_id: str,
        data: Optional[Dict[str, Any]] = None,
        source: str = STEWARD_SOURCE,
    ) -> "Event":
        return cls(source=source, event_type=event_name, data=dict(data or {}), owner_id=owner_id)

    @classmethod
    def workflow_webhook(
        cls,
        workflow_id: str,
        owner_id: str,
        payload: Optional[Dict[str, Any]] = None,
        source: str = STEWARD_SOURCE,
    ) -> "Event":
        return cls(
            source=source,
            event_type=WORKFLOW_WEBHOOK,
            data=dict(payload or {}),
            owner_id=owner_id,
            workflow_id=workflow_id,
        )

    def to_fields(self) -> Dict[str, str]:
        """Flatten into Redis stream fields (all values are strings)."""
        fields = {
            "source": self.source,
            "event_type": self.event_type,
            "data": json.dumps(self.data, default=str),
            "owner_id": self.owner_id,
            "timestamp": self.timestamp or "",
        }
        if self.workflow_id:
            fields["workflow_id"] = self.workflow_id
        return fields

    @classmethod
    def from_fields(cls, fields: Dict[str, str], event_id: Optional[str] = None) -> "Event":
        return cls(
            source=fields.get("source", ""),
            event_type=fields.get("event_type", ""),
            data=json.loads(fields.get("data") or "{}"),
            owner_id=fields.get("owner_id", ""),
            timestamp=fields.get("timestamp") or None,
            workflow_id=fields.get("workflow_id") or None,
            event_id=event_id,
        )


EventCallback = Callable[[Event], Awaitable[None]]


@dataclass(frozen=True)
class _Pattern:
    """``source:event_type``; ``source`` or ``source:*`` takes every event of the source."""
    source: str
    event_type: Optional[str] = None

    @classmethod
    def parse(cls, pattern: str) -> "_Pattern":
        source, _, event_type = pattern.partition(":")
        if not source or source == "*":
            raise ValueError(f"Subscription pattern needs a concrete source: {pattern!r}")
        return cls(source=source, event_type=None if event_type in ("", "*") else event_type)

    def matches(self, event: Event) -> bool:
        if self.source != event.source:
            return False
        return self.event_type is None or self.event_type == event.event_type


class EventBus:
    """
    Redis Streams event bus, one stream per event source.

    Usage:
        bus = EventBus(redis_url="redis://localhost:6379")
        await bus.initialize()

        await bus.subscribe("steward:payment_failed", callback)
        await bus.emit("payment_failed", owner_id="own_1", data={"payment_id": "pay_1"})
        await bus.signal_workflow("wf_1", owner_id="own_1", payload={"quote_id": "q_1"})
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        source: str = STEWARD_SOURCE,
        stream_prefix: str = "steward:events:",
    ):
        self._redis_url = redis_url
        self.source = source
        self._stream_prefix = stream_prefix
        self._redis = None
        self._subscriptions: Dict[_Pattern, List[EventCallback]] = {}
        self._last_ids: Dict[str, str] = {}  # stream -> last delivered id
        self._running = False
        self._listen_task: Optional[asyncio.Task] = None

    async def initialize(self) -> None:
        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(self._redis_url, decode_responses=True)

    async def close(self) -> None:
        self._running = False
        if self._listen_task:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def stream_for(self, source: str) -> str:
        return f"{self._stream_prefix}{source}"

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(self, event: Event) -> str:
        """Append an event to its source stream; returns the stream entry id."""
        if not self._redis:
            await self.initialize()
        if not event.owner_id:
            raise ValueError(f"Event {event.key} has no owner")
        if event.event_type == WORKFLOW_WEBHOOK and not event.workflow_id:
            raise ValueError("A workflow webhook event needs a workflow_id")
        if not event.timestamp:
            event.timestamp = datetime.now(timezone.utc).isoformat()

        event.event_id = await self._redis.xadd(self.stream_for(event.source), event.to_fields())
        logger.debug(f"Published {event.key} for {event.owner_id} as {event.event_id}")
        return event.event_id

    async def emit(self, event_name: str, owner_id: str, data: Optional[Dict[str, Any]] = None) -> str:
        """Publish a task trigger from this bus's own source."""
        return await self.publish(Event.task_trigger(event_name, owner_id, data, source=self.source))

    async def signal_workflow(
        self,
        workflow_id: str,
        owner_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish the webhook a paused workflow is waiting for."""
        return await self.publish(
            Event.workflow_webhook(workflow_id, owner_id, payload, source=self.source)
        )

    # ------------------------------------------------------------------
    # Subscribing
    # ------------------------------------------------------------------

    async def subscribe(self, pattern: str, callback: EventCallback) -> None:
        """Register ``callback`` for ``source:event_type`` (or ``source:*``)."""
        parsed = _Pattern.parse(pattern)
        self._subscriptions.setdefault(parsed, []).append(callback)
        logger.info(f"Subscribed to event pattern: {pattern}")

        if not self._running:
            await self._start_listener()

    async def unsubscribe(self, pattern: str) -> None:
        self._subscriptions.pop(_Pattern.parse(pattern), None)
        logger.info(f"Unsubscribed from pattern: {pattern}")

    async def poll(self, block_ms: int = 1000) -> int:
        """Read each subscribed stream once and dispatch; returns events delivered."""
        streams = {self.stream_for(p.source) for p in self._subscriptions}
        if not streams:
            return 0
        # "$" = only entries newer than the first read
        cursors = {s: self._last_ids.get(s, "$") for s in streams}
        results = await self._redis.xread(cursors, count=100, block=block_ms)

        delivered = 0
        for stream_name, entries in results or []:
            for entry_id, fields in entries:
                self._last_ids[stream_name] = entry_id
                try:
                    event = Event.from_fields(fields, event_id=entry_id)
                except ValueError as e:
                    logger.warning(f"Dropping malformed entry {entry_id} on {stream_name}: {e}")
                    continue
                await self._dispatch(event)
                delivered += 1
        return delivered

    async def _start_listener(self) -> None:
        if self._running:
            return
        if not self._redis:
            await self.initialize()
        self._running = True
        self._listen_task = asyncio.create_task(self._listen_loop())

    async def _listen_loop(self) -> None:
        while self._running:
            try:
                if not self._subscriptions:
                    await asyncio.sleep(1)
                    continue
                await self.poll()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"EventBus listener error: {e}")
                await asyncio.sleep(1)

    async def _dispatch(self, event: Event) -> None:
        for pattern, callbacks in list(self._subscriptions.items()):
            if not pattern.matches(event):
                continue
            for callback in callbacks:
                try:
                    await callback(event)
                except Exception as e:
                    logger.error(f"Event callback error for {event.key} ({event.event_id}): {e}", exc_info=True)
