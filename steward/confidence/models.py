"""
Steward Confidence Models - factor weights and the history records they read
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..tools.models import ToolCategory

# Weights of the six factors; they sum to 1.0
CONFIDENCE_WEIGHTS: Dict[str, float] = {
    "historical_accuracy": 0.30,
    "source_quality": 0.10,
    "precedent_alignment": 0.20,
    "rule_alignment": 0.15,
    "golden_alignment": 0.10,
    "outcome_track": 0.15,
}

SOURCE_QUALITY: Dict[ToolCategory, float] = {
    ToolCategory.QUERY: 0.95,
    ToolCategory.MEMORY: 0.90,
    ToolCategory.ACTION: 0.85,
    ToolCategory.PLANNING: 0.80,
    ToolCategory.GENERATE: 0.75,
    ToolCategory.WORKFLOW: 0.70,
    ToolCategory.EXTERNAL: 0.65,
    ToolCategory.INTEGRATION: 0.60,
}

# Neutral defaults used when there is not enough data
DEFAULT_HISTORICAL_ACCURACY = 0.8
DEFAULT_PRECEDENT_ALIGNMENT = 0.7
DEFAULT_RULE_ALIGNMENT = 0.8
DEFAULT_GOLDEN_ALIGNMENT = 0.5
DEFAULT_OUTCOME_TRACK = 0.7

# Exponential moving average of per-tool success
EMA_ALPHA = 0.15
EMA_INITIAL_SUCCESS = 0.9
EMA_INITIAL_FAILURE = 0.5


@dataclass(frozen=True)
class ConfidenceFactors:
    """Six bounded sub-scores plus their weighted composite, all rounded to 3 places."""
    historical_accuracy: float
    source_quality: float
    precedent_alignment: float
    rule_alignment: float
    golden_alignment: float
    outcome_track: float
    composite: float

    @classmethod
    def from_factors(cls, **factors: float) -> "ConfidenceFactors":
        clamped = {
            name: round(min(1.0, max(0.0, factors[name])), 3)
            for name in CONFIDENCE_WEIGHTS
        }
        composite = sum(CONFIDENCE_WEIGHTS[name] * value for name, value in clamped.items())
        return cls(composite=round(composite, 3), **clamped)

    def to_dict(self) -> Dict[str, float]:
        return {
            "historical_accuracy": self.historical_accuracy,
            "source_quality": self.source_quality,
            "precedent_alignment": self.precedent_alignment,
            "rule_alignment": self.rule_alignment,
            "golden_alignment": self.golden_alignment,
            "outcome_track": self.outcome_track,
            "composite": self.composite,
        }


@dataclass
class ToolStats:
    """Per (owner, tool) execution aggregates."""
    owner_id: str
    tool_name: str
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    success_rate_ema: float = 0.0
    avg_duration_ms_ema: float = 0.0
    last_used_ms: Optional[int] = None
    recent_param_keys: List[List[str]] = field(default_factory=list)

    def record(self, success: bool, duration_ms: int, params: Optional[Dict[str, Any]], at_ms: int) -> None:
        value = 1.0 if success else 0.0
        if self.total_executions == 0:
            self.success_rate_ema = EMA_INITIAL_SUCCESS if success else EMA_INITIAL_FAILURE
            self.avg_duration_ms_ema = float(duration_ms)
        else:
            self.success_rate_ema = EMA_ALPHA * value + (1 - EMA_ALPHA) * self.success_rate_ema
            self.avg_duration_ms_ema = (
                EMA_ALPHA * duration_ms + (1 - EMA_ALPHA) * self.avg_duration_ms_ema
            )
        self.total_executions += 1
        if success:
            self.successful_executions += 1
        else:
            self.failed_executions += 1
        self.last_used_ms = at_ms
        if params is not None:
            self.recent_param_keys = (self.recent_param_keys + [sorted(params)])[-5:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "tool_name": self.tool_name,
            "total_executions": self.total_executions,
            "successful_executions": self.successful_executions,
            "failed_executions": self.failed_executions,
            "success_rate_ema": self.success_rate_ema,
            "avg_duration_ms_ema": self.avg_duration_ms_ema,
            "last_used_ms": self.last_used_ms,
            "recent_param_keys": self.recent_param_keys,
        }


@dataclass
class OwnerRule:
    """A rule the owner taught the agent, scoped to a tool category."""
    id: str
    owner_id: str
    category: str
    rule: str = ""
    confidence: float = 0.8
    active: bool = True
