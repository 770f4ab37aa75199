"""
Steward Autonomy - risk/tier gating and graduation
"""

from .gate import AutonomyGate
from .graduation import GraduationTracker
from .models import (
    PRESET_DEFAULTS,
    TIER_CATEGORIES,
    AutonomyPermissionError,
    AutonomyPreset,
    AutonomyResolution,
    AutonomySettings,
    AutonomySource,
    FeedbackDecision,
    GraduationRecord,
    OwnerProfile,
    SubscriptionTier,
)

__all__ = [
    "PRESET_DEFAULTS",
    "TIER_CATEGORIES",
    "AutonomyGate",
    "AutonomyPermissionError",
    "AutonomyPreset",
    "AutonomyResolution",
    "AutonomySettings",
    "AutonomySource",
    "FeedbackDecision",
    "GraduationRecord",
    "GraduationTracker",
    "OwnerProfile",
    "SubscriptionTier",
]
