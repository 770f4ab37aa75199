"""
In-memory history provider plus intent fingerprinting.

Keeps execution aggregates, owner feedback, rules, golden trajectories and
downstream outcomes. Production deployments plug their own store in behind
HistoryProviderProtocol.
"""

import hashlib
import logging
import re
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Sequence, Set, Tuple

from ..autonomy.models import FeedbackDecision
from ..clock import Clock, now_ms
from .models import OwnerRule, ToolStats

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z0-9]+")


def compute_intent_hash(message: str, tools_used: Sequence[str] = ()) -> str:
    """
    Fingerprint an intent from its wording and the first tools it used.

    Uses the sorted unique words longer than three characters (first 10)
    and the first three tools, sorted.
    """
    words = sorted({w for w in _WORD_RE.findall(message.lower()) if len(w) > 3})[:10]
    tools = sorted(tools_used[:3])
    raw = " ".join(words) + "|" + ",".join(tools)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class InMemoryHistory:
    """HistoryProviderProtocol implementation backed by dicts."""

    def __init__(self, max_decisions: int = 50, max_outcomes: int = 100, clock: Optional[Clock] = None):
        self._clock = clock or now_ms
        self._stats: Dict[Tuple[str, str], ToolStats] = {}
        self._decisions: Dict[Tuple[str, str], Deque[FeedbackDecision]] = defaultdict(
            lambda: deque(maxlen=max_decisions)
        )
        self._outcomes: Dict[Tuple[str, str], Deque[bool]] = defaultdict(
            lambda: deque(maxlen=max_outcomes)
        )
        self._rules: Dict[str, List[OwnerRule]] = defaultdict(list)
        self._golden: Dict[Tuple[str, str], Set[str]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_tool_stats(self, owner_id: str, tool_name: str) -> Optional[ToolStats]:
        return self._stats.get((owner_id, tool_name))

    async def get_recent_decisions(
        self, owner_id: str, tool_name: str, limit: int
    ) -> List[FeedbackDecision]:
        """Most recent first."""
        decisions = list(self._decisions.get((owner_id, tool_name), ()))
        return list(reversed(decisions))[:limit]

    async def get_active_rules(self, owner_id: str, category: str, limit: int) -> List[OwnerRule]:
        rules = [r for r in self._rules.get(owner_id, []) if r.active and r.category == category]
        return rules[:limit]

    async def get_golden_tools(self, owner_id: str, intent_hash: str) -> List[str]:
        return sorted(self._golden.get((owner_id, intent_hash), set()))

    async def get_recent_outcomes(self, owner_id: str, tool_name: str, limit: int) -> List[bool]:
        """Most recent first."""
        outcomes = list(self._outcomes.get((owner_id, tool_name), ()))
        return list(reversed(outcomes))[:limit]

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_execution(
        self,
        owner_id: str,
        tool_name: str,
        success: bool,
        duration_ms: int,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        key = (owner_id, tool_name)
        if key not in self._stats:
            self._stats[key] = ToolStats(owner_id=owner_id, tool_name=tool_name)
        self._stats[key].record(success, duration_ms, params, self._clock())

    async def record_decision(
        self, owner_id: str, tool_name: str, decision: FeedbackDecision
    ) -> None:
        self._decisions[(owner_id, tool_name)].append(decision)

    async def record_outcome(self, owner_id: str, tool_name: str, success: bool) -> None:
        """Record a measured downstream outcome (e.g. rent actually arrived)."""
        self._outcomes[(owner_id, tool_name)].append(success)

    def add_rule(self, rule: OwnerRule) -> None:
        self._rules[rule.owner_id].append(rule)

    def mark_golden(self, owner_id: str, intent_hash: str, tools: Sequence[str]) -> None:
        """Mark a successful trajectory as the template for its intent."""
        self._golden[(owner_id, intent_hash)].update(tools)
        logger.info(f"Golden trajectory recorded for {owner_id}/{intent_hash}: {list(tools)}")
