"""
Confidence calibrator - six independent signals, one weighted composite.

Each factor falls back to a neutral default when its data source has too
few samples, or when its query fails; one broken signal never zeroes the
composite.
"""

import asyncio
import logging
from typing import Any, Optional, TYPE_CHECKING

from ..autonomy.models import FeedbackDecision
from ..tools.models import ToolCategory, ToolDefinition
from .models import (
    DEFAULT_GOLDEN_ALIGNMENT,
    DEFAULT_HISTORICAL_ACCURACY,
    DEFAULT_OUTCOME_TRACK,
    DEFAULT_PRECEDENT_ALIGNMENT,
    DEFAULT_RULE_ALIGNMENT,
    SOURCE_QUALITY,
    ConfidenceFactors,
)

if TYPE_CHECKING:
    from ..protocols import HistoryProviderProtocol

logger = logging.getLogger(__name__)

_UNCALIBRATED_CATEGORIES = frozenset({ToolCategory.QUERY, ToolCategory.MEMORY})


class ConfidenceCalibrator:
    """Computes ConfidenceFactors for a (tool, owner, intent) triple."""

    MIN_EXECUTIONS = 3
    PRECEDENT_WINDOW = 5
    MIN_PRECEDENTS = 2
    RULE_LIMIT = 5
    OUTCOME_WINDOW = 20
    MIN_OUTCOMES = 3

    def __init__(self, history: "HistoryProviderProtocol"):
        self.history = history

    @staticmethod
    def needs_calibration(tool: ToolDefinition) -> bool:
        """Read-only categories skip calibration."""
        return tool.category not in _UNCALIBRATED_CATEGORIES

    async def calculate(
        self,
        tool: ToolDefinition,
        owner_id: str,
        intent_hash: Optional[str] = None,
    ) -> ConfidenceFactors:
        results = await asyncio.gather(
            self._historical_accuracy(tool, owner_id),
            self._precedent_alignment(tool, owner_id),
            self._rule_alignment(tool, owner_id),
            self._golden_alignment(tool, owner_id, intent_hash),
            self._outcome_track(tool, owner_id),
            return_exceptions=True,
        )
        defaults = (
            DEFAULT_HISTORICAL_ACCURACY,
            DEFAULT_PRECEDENT_ALIGNMENT,
            DEFAULT_RULE_ALIGNMENT,
            DEFAULT_GOLDEN_ALIGNMENT,
            DEFAULT_OUTCOME_TRACK,
        )
        values = [
            self._or_default(result, default, tool.name)
            for result, default in zip(results, defaults)
        ]
        historical, precedent, rules, golden, outcomes = values

        factors = ConfidenceFactors.from_factors(
            historical_accuracy=historical,
            source_quality=SOURCE_QUALITY[tool.category],
            precedent_alignment=precedent,
            rule_alignment=rules,
            golden_alignment=golden,
            outcome_track=outcomes,
        )
        logger.debug(f"Confidence for {tool.name}/{owner_id}: {factors.composite}")
        return factors

    @staticmethod
    def _or_default(result: Any, default: float, tool_name: str) -> float:
        if isinstance(result, BaseException):
            logger.warning(f"Confidence signal failed for {tool_name}: {result}")
            return default
        return result

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    async def _historical_accuracy(self, tool: ToolDefinition, owner_id: str) -> float:
        stats = await self.history.get_tool_stats(owner_id, tool.name)
        if stats is None or stats.total_executions < self.MIN_EXECUTIONS:
            return DEFAULT_HISTORICAL_ACCURACY
        return stats.success_rate_ema

    async def _precedent_alignment(self, tool: ToolDefinition, owner_id: str) -> float:
        decisions = await self.history.get_recent_decisions(owner_id, tool.name, self.PRECEDENT_WINDOW)
        if len(decisions) < self.MIN_PRECEDENTS:
            return DEFAULT_PRECEDENT_ALIGNMENT
        approved = sum(1 for d in decisions if d == FeedbackDecision.APPROVED)
        return approved / len(decisions)

    async def _rule_alignment(self, tool: ToolDefinition, owner_id: str) -> float:
        rules = await self.history.get_active_rules(owner_id, tool.category.value, self.RULE_LIMIT)
        if not rules:
            return DEFAULT_RULE_ALIGNMENT
        return sum(r.confidence for r in rules) / len(rules)

    async def _golden_alignment(
        self, tool: ToolDefinition, owner_id: str, intent_hash: Optional[str]
    ) -> float:
        if not intent_hash:
            return DEFAULT_GOLDEN_ALIGNMENT
        tools = await self.history.get_golden_tools(owner_id, intent_hash)
        return 1.0 if tool.name in tools else DEFAULT_GOLDEN_ALIGNMENT

    async def _outcome_track(self, tool: ToolDefinition, owner_id: str) -> float:
        outcomes = await self.history.get_recent_outcomes(owner_id, tool.name, self.OUTCOME_WINDOW)
        if len(outcomes) < self.MIN_OUTCOMES:
            return DEFAULT_OUTCOME_TRACK
        return sum(1 for o in outcomes if o) / len(outcomes)
