"""
Autonomy gate - resolves the effective permission level for one tool call.

Resolution order:
    1. tier check: unreachable category -> AutonomyPermissionError
    2. owner category override, else the preset's category default
    3. clamp to the tool's ceiling (risk-derived and declared)
    4. graduated (owner, tool) pairs get one level above the clamp
    5. an optional caller cap (background tasks) lowers the result
Level 0 always requires approval; a zero ceiling is a hard block that
graduation cannot lift.
"""

import logging
from typing import Optional, Union

from ..constants import AUTO_EXECUTE_LEVEL
from ..tools.models import AutonomyLevel, ToolDefinition
from .graduation import GraduationTracker
from .models import (
    AutonomyPermissionError,
    AutonomyResolution,
    AutonomySettings,
    AutonomySource,
    GraduationRecord,
    SubscriptionTier,
)

logger = logging.getLogger(__name__)


class AutonomyGate:
    """Pure resolver: no side effects, result depends only on its inputs."""

    def __init__(
        self,
        graduation: Optional[GraduationTracker] = None,
        auto_execute_level: Union[int, AutonomyLevel] = AUTO_EXECUTE_LEVEL,
    ):
        self._graduation = graduation or GraduationTracker()
        self.auto_execute_level = AutonomyLevel.parse(auto_execute_level)

    def check_tier(self, tool: ToolDefinition, tier: Union[str, SubscriptionTier]) -> SubscriptionTier:
        tier = SubscriptionTier(tier)
        if tool.category not in tier.categories:
            raise AutonomyPermissionError(tool.name, tool.category, tier)
        return tier

    def resolve(
        self,
        tool: ToolDefinition,
        settings: AutonomySettings,
        tier: Union[str, SubscriptionTier],
        graduation: Optional[GraduationRecord] = None,
        cap: Optional[AutonomyLevel] = None,
    ) -> AutonomyResolution:
        """
        Resolve autonomy for one call.

        Args:
            tool: Catalog entry of the requested tool
            settings: Owner's preset and category overrides
            tier: Caller's subscription tier
            graduation: The owner's GraduationRecord for this tool, if any
            cap: Upper bound imposed by the caller (e.g. a background task)

        Raises:
            AutonomyPermissionError: If the tier cannot reach the tool's category
        """
        self.check_tier(tool, tier)

        if tool.category in settings.category_overrides:
            requested = settings.category_overrides[tool.category]
            source = AutonomySource.OWNER_OVERRIDE
        else:
            requested = settings.preset.default_level(tool.category)
            source = AutonomySource.TOOL_DEFAULT

        ceiling = tool.effective_ceiling
        level = min(requested, ceiling)

        if ceiling == AutonomyLevel.INFORM:
            level = AutonomyLevel.INFORM
            source = AutonomySource.HARD_BLOCK
        elif self._graduation.is_graduated(graduation):
            level = AutonomyLevel(min(level + 1, AutonomyLevel.AUTONOMOUS))
            source = AutonomySource.GRADUATED

        if cap is not None and level > cap:
            level = AutonomyLevel(cap)

        requires_approval = level == AutonomyLevel.INFORM or level < self.auto_execute_level

        return AutonomyResolution(
            tool_name=tool.name,
            category=tool.category,
            risk_level=tool.risk_level,
            level=level,
            source=source,
            requires_approval=requires_approval,
            ceiling=ceiling,
            requested_level=requested,
            approval_streak=graduation.consecutive_approvals if graduation else 0,
            graduation_threshold=(
                self._graduation.threshold_for(graduation) if graduation
                else self._graduation.threshold
            ),
        )
