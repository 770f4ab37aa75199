"""
Fallback backing stores.

- ResultCache: last good result per (tool, owner, input) for the ``cache``
  strategy, served only within the policy's max age
- DeferredQueue: calls parked by the ``queue`` strategy until their
  retry-after time; the scheduler drains it
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..clock import Clock, now_ms
from ..tools.models import CallerContext

logger = logging.getLogger(__name__)


@dataclass
class CachedResult:
    data: Any
    stored_at_ms: int
    age_ms: int


class ResultCache:
    """Bounded LRU cache of successful results."""

    def __init__(self, max_entries: int = 1_000, clock: Optional[Clock] = None):
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()
        self._max_entries = max_entries
        self._clock = clock or now_ms

    def put(self, key: str, data: Any) -> None:
        self._entries[key] = (data, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def get(self, key: str, max_age_ms: Optional[int] = None) -> Optional[CachedResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        data, stored_at = entry
        age = self._clock() - stored_at
        if max_age_ms is not None and age > max_age_ms:
            return None
        self._entries.move_to_end(key)
        return CachedResult(data=data, stored_at_ms=stored_at, age_ms=age)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class DeferredCall:
    """A tool call waiting for its deferred retry."""
    id: str
    tool_name: str
    input: Dict[str, Any]
    context: Dict[str, Any]
    available_at_ms: int
    enqueued_at_ms: int
    attempts: int = 1
    reason: str = ""

    @classmethod
    def generate_id(cls) -> str:
        return f"dfr_{uuid.uuid4().hex[:12]}"

    def caller_context(self) -> CallerContext:
        return CallerContext.from_dict(self.context)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "input": self.input,
            "context": self.context,
            "available_at_ms": self.available_at_ms,
            "enqueued_at_ms": self.enqueued_at_ms,
            "attempts": self.attempts,
            "reason": self.reason,
        }


class DeferredQueue:
    """
    In-memory queue of deferred calls.

    A call is re-queued at most ``max_attempts`` times in total; after that
    ``enqueue`` refuses it and the caller escalates instead.
    """

    def __init__(self, max_attempts: int = 5, clock: Optional[Clock] = None):
        self._items: Dict[str, DeferredCall] = {}
        self._max_attempts = max_attempts
        self._clock = clock or now_ms

    def enqueue(
        self,
        tool_name: str,
        input: Dict[str, Any],
        context: CallerContext,
        retry_after_ms: int,
        reason: str = "",
    ) -> Optional[DeferredCall]:
        attempts = int(context.metadata.get("deferred_attempts", 0)) + 1
        if attempts > self._max_attempts:
            logger.warning(
                f"Deferred call for {tool_name} dropped after {attempts - 1} deferred attempts"
            )
            return None
        now = self._clock()
        ctx = context.to_dict()
        ctx["metadata"] = {**ctx.get("metadata", {}), "deferred_attempts": attempts}
        call = DeferredCall(
            id=DeferredCall.generate_id(),
            tool_name=tool_name,
            input=dict(input),
            context=ctx,
            available_at_ms=now + retry_after_ms,
            enqueued_at_ms=now,
            attempts=attempts,
            reason=reason,
        )
        self._items[call.id] = call
        logger.info(f"Deferred {tool_name} as {call.id} for {retry_after_ms}ms ({reason})")
        return call

    def pop_due(self, at_ms: Optional[int] = None) -> List[DeferredCall]:
        """Remove and return calls whose retry time has arrived, oldest first."""
        at = self._clock() if at_ms is None else at_ms
        due = sorted(
            (c for c in self._items.values() if c.available_at_ms <= at),
            key=lambda c: c.available_at_ms,
        )
        for call in due:
            del self._items[call.id]
        return due

    def pending(self) -> List[DeferredCall]:
        return sorted(self._items.values(), key=lambda c: c.available_at_ms)

    def remove(self, call_id: str) -> bool:
        return self._items.pop(call_id, None) is not None

    def __len__(self) -> int:
        return len(self._items)
