"""
Steward Autonomy Models - tiers, presets, owner settings and resolutions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from ..tools.models import AutonomyLevel, RiskLevel, ToolCategory


class SubscriptionTier(str, Enum):
    STARTER = "starter"
    PRO = "pro"
    HANDS_OFF = "hands_off"

    @property
    def categories(self) -> FrozenSet[ToolCategory]:
        """Tool categories reachable at this tier."""
        return TIER_CATEGORIES[self]


_STARTER_CATEGORIES = frozenset({
    ToolCategory.QUERY,
    ToolCategory.MEMORY,
    ToolCategory.PLANNING,
    ToolCategory.ACTION,
    ToolCategory.GENERATE,
})

TIER_CATEGORIES: Dict[SubscriptionTier, FrozenSet[ToolCategory]] = {
    SubscriptionTier.STARTER: _STARTER_CATEGORIES,
    SubscriptionTier.PRO: _STARTER_CATEGORIES | {ToolCategory.WORKFLOW},
    SubscriptionTier.HANDS_OFF: _STARTER_CATEGORIES | {
        ToolCategory.WORKFLOW,
        ToolCategory.EXTERNAL,
        ToolCategory.INTEGRATION,
    },
}


class AutonomyPreset(str, Enum):
    CAUTIOUS = "cautious"
    BALANCED = "balanced"
    HANDS_OFF = "hands_off"

    def default_level(self, category: ToolCategory) -> AutonomyLevel:
        return PRESET_DEFAULTS[self][category]


def _levels(**levels: int) -> Dict[ToolCategory, AutonomyLevel]:
    return {ToolCategory(name): AutonomyLevel(level) for name, level in levels.items()}


PRESET_DEFAULTS: Dict[AutonomyPreset, Dict[ToolCategory, AutonomyLevel]] = {
    AutonomyPreset.CAUTIOUS: _levels(
        query=4, action=1, generate=2, external=1,
        integration=1, workflow=0, memory=4, planning=3,
    ),
    AutonomyPreset.BALANCED: _levels(
        query=4, action=2, generate=3, external=3,
        integration=2, workflow=1, memory=4, planning=3,
    ),
    AutonomyPreset.HANDS_OFF: _levels(
        query=4, action=3, generate=4, external=4,
        integration=3, workflow=2, memory=4, planning=3,
    ),
}


class AutonomySource(str, Enum):
    """Where a resolved autonomy level came from."""
    TOOL_DEFAULT = "tool_default"
    OWNER_OVERRIDE = "owner_override"
    GRADUATED = "graduated"
    HARD_BLOCK = "hard_block"


class FeedbackDecision(str, Enum):
    """Owner feedback on a proposed action."""
    APPROVED = "approved"
    REJECTED = "rejected"
    CORRECTED = "corrected"


class AutonomyPermissionError(Exception):
    """Raised when the caller's tier cannot reach the tool's category at all."""

    def __init__(self, tool_name: str, category: ToolCategory, tier: SubscriptionTier):
        self.tool_name = tool_name
        self.category = category
        self.tier = tier
        super().__init__(
            f"Tool '{tool_name}' ({category.value}) is not available "
            f"on the {tier.value} plan"
        )


@dataclass
class AutonomySettings:
    """An owner's preset plus any per-category overrides."""
    preset: AutonomyPreset = AutonomyPreset.BALANCED
    category_overrides: Dict[ToolCategory, AutonomyLevel] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preset": self.preset.value,
            "category_overrides": {
                category.value: int(level)
                for category, level in self.category_overrides.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AutonomySettings":
        """Accepts overrides written as ``3`` or ``"L3"``."""
        data = data or {}
        overrides = data.get("category_overrides") or {}
        return cls(
            preset=AutonomyPreset(data.get("preset", "balanced")),
            category_overrides={
                ToolCategory(category): AutonomyLevel.parse(level)
                for category, level in overrides.items()
            },
        )


@dataclass
class OwnerProfile:
    """What the scheduler needs to know about an owner."""
    owner_id: str
    tier: SubscriptionTier = SubscriptionTier.STARTER
    settings: AutonomySettings = field(default_factory=AutonomySettings)
    maturity_level: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OwnerProfile":
        return cls(
            owner_id=data["owner_id"],
            tier=SubscriptionTier(data.get("tier", "starter")),
            settings=AutonomySettings.from_dict(data.get("settings")),
            maturity_level=data.get("maturity_level", 0),
        )


@dataclass
class GraduationRecord:
    """
    Approval history for one (owner, tool) pair.

    A correction (or rejection) resets the streak; one arriving while the
    tool is graduated also demotes it and doubles the backoff multiplier,
    so the next graduation needs a longer streak.
    """
    owner_id: str
    tool_name: str
    consecutive_approvals: int = 0
    total_approvals: int = 0
    total_rejections: int = 0
    total_corrections: int = 0
    backoff_multiplier: int = 1
    graduated: bool = False
    graduated_at_ms: Optional[int] = None
    last_decision_at_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "tool_name": self.tool_name,
            "consecutive_approvals": self.consecutive_approvals,
            "total_approvals": self.total_approvals,
            "total_rejections": self.total_rejections,
            "total_corrections": self.total_corrections,
            "backoff_multiplier": self.backoff_multiplier,
            "graduated": self.graduated,
            "graduated_at_ms": self.graduated_at_ms,
            "last_decision_at_ms": self.last_decision_at_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraduationRecord":
        return cls(
            owner_id=data["owner_id"],
            tool_name=data["tool_name"],
            consecutive_approvals=data.get("consecutive_approvals", 0),
            total_approvals=data.get("total_approvals", 0),
            total_rejections=data.get("total_rejections", 0),
            total_corrections=data.get("total_corrections", 0),
            backoff_multiplier=data.get("backoff_multiplier", 1),
            graduated=data.get("graduated", False),
            graduated_at_ms=data.get("graduated_at_ms"),
            last_decision_at_ms=data.get("last_decision_at_ms"),
        )


@dataclass(frozen=True)
class AutonomyResolution:
    """Effective permission for one tool-call attempt. Never persisted beyond audit."""
    tool_name: str
    category: ToolCategory
    risk_level: RiskLevel
    level: AutonomyLevel
    source: AutonomySource
    requires_approval: bool
    ceiling: AutonomyLevel
    requested_level: AutonomyLevel
    approval_streak: int = 0
    graduation_threshold: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "category": self.category.value,
            "risk_level": self.risk_level.value,
            "level": int(self.level),
            "source": self.source.value,
            "requires_approval": self.requires_approval,
            "ceiling": int(self.ceiling),
            "requested_level": int(self.requested_level),
            "approval_streak": self.approval_streak,
            "graduation_threshold": self.graduation_threshold,
        }
