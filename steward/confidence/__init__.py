"""
Steward Confidence - multi-factor confidence calibration
"""

from .calibrator import ConfidenceCalibrator
from .history import InMemoryHistory, compute_intent_hash
from .models import (
    CONFIDENCE_WEIGHTS,
    SOURCE_QUALITY,
    ConfidenceFactors,
    OwnerRule,
    ToolStats,
)

__all__ = [
    "CONFIDENCE_WEIGHTS",
    "SOURCE_QUALITY",
    "ConfidenceCalibrator",
    "ConfidenceFactors",
    "InMemoryHistory",
    "OwnerRule",
    "ToolStats",
    "compute_intent_hash",
]
