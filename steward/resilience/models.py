"""
Steward Resilience Models - static policy configuration and call outcomes

This module defines:
- ErrorCategory: the six failure classes every error is mapped to
- RetryConfig / CircuitBreakerConfig / FallbackConfig / IdempotencyConfig
- ResiliencePolicy: one named bundle of the above plus a timeout tier
- ToolExecutionResult: everything the executor reports about one call
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class ErrorCategory(str, Enum):
    """Failure classes; recovery is decided per class, never per exception type."""
    TRANSIENT = "transient"
    DEGRADED = "degraded"
    PERMANENT_SYSTEM = "permanent_system"
    PERMANENT_LOGIC = "permanent_logic"
    USER_ACTION_REQUIRED = "user_action_required"
    SAFETY_HALT = "safety_halt"

    @property
    def allows_fallback(self) -> bool:
        """Whether local recovery (fallback) may be attempted."""
        return _CATEGORY_FALLBACK[self]

    @property
    def trips_circuit(self) -> bool:
        """Whether this failure counts against the service's circuit breaker."""
        return _CATEGORY_TRIPS_CIRCUIT[self]


_CATEGORY_FALLBACK: Dict[ErrorCategory, bool] = {
    ErrorCategory.TRANSIENT: True,
    ErrorCategory.DEGRADED: True,
    ErrorCategory.PERMANENT_SYSTEM: True,
    ErrorCategory.PERMANENT_LOGIC: False,
    ErrorCategory.USER_ACTION_REQUIRED: False,
    ErrorCategory.SAFETY_HALT: False,
}

_CATEGORY_TRIPS_CIRCUIT: Dict[ErrorCategory, bool] = {
    ErrorCategory.TRANSIENT: True,
    ErrorCategory.DEGRADED: True,
    ErrorCategory.PERMANENT_SYSTEM: True,
    ErrorCategory.PERMANENT_LOGIC: False,
    ErrorCategory.USER_ACTION_REQUIRED: False,
    ErrorCategory.SAFETY_HALT: False,
}


class TimeoutTier(str, Enum):
    FAST = "fast"
    STANDARD = "standard"
    EXTENDED = "extended"
    LONG = "long"
    WORKFLOW = "workflow"

    @property
    def timeout_ms(self) -> int:
        return _TIMEOUT_TIER_MS[self]


_TIMEOUT_TIER_MS: Dict[TimeoutTier, int] = {
    TimeoutTier.FAST: 5_000,
    TimeoutTier.STANDARD: 10_000,
    TimeoutTier.EXTENDED: 30_000,
    TimeoutTier.LONG: 60_000,
    TimeoutTier.WORKFLOW: 120_000,
}


class FallbackStrategy(str, Enum):
    CACHE = "cache"
    QUEUE = "queue"
    ALTERNATIVE_TOOL = "alternative_tool"
    MANUAL_ESCALATION = "manual_escalation"
    SKIP = "skip"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ExecutionStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    DEFERRED = "deferred"


# ---------------------------------------------------------------------------
# Policy configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryConfig:
    """
    Retry policy.

    ``max_attempts`` counts every attempt including the first, so 1 means
    "never retry".
    """
    max_attempts: int = 1
    base_delay_ms: int = 1_000
    max_delay_ms: int = 4_000
    backoff_multiplier: float = 2.0
    jitter_ms: int = 0
    retryable_errors: FrozenSet[ErrorCategory] = frozenset({ErrorCategory.TRANSIENT})

    def delay_ms(self, retry_index: int, jitter_fraction: float = 0.0) -> int:
        """Delay before retry ``retry_index`` (0-based), jitter in [0, jitter_ms]."""
        delay = min(
            self.base_delay_ms * (self.backoff_multiplier ** retry_index),
            self.max_delay_ms,
        )
        return int(delay + self.jitter_ms * jitter_fraction)

    def is_retryable(self, category: ErrorCategory) -> bool:
        return category in self.retryable_errors

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        retryable = data.get("retryable_errors")
        return cls(
            max_attempts=data.get("max_attempts", 1),
            base_delay_ms=data.get("base_delay_ms", 1_000),
            max_delay_ms=data.get("max_delay_ms", 4_000),
            backoff_multiplier=data.get("backoff_multiplier", 2.0),
            jitter_ms=data.get("jitter_ms", 0),
            retryable_errors=(
                frozenset(ErrorCategory(c) for c in retryable)
                if retryable is not None else frozenset({ErrorCategory.TRANSIENT})
            ),
        )


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    failure_window_ms: int = 60_000
    half_open_after_ms: int = 30_000
    half_open_max_attempts: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=data.get("failure_threshold", 5),
            failure_window_ms=data.get("failure_window_ms", 60_000),
            half_open_after_ms=data.get("half_open_after_ms", 30_000),
            half_open_max_attempts=data.get("half_open_max_attempts", 1),
        )


@dataclass(frozen=True)
class FallbackConfig:
    strategy: FallbackStrategy = FallbackStrategy.MANUAL_ESCALATION
    cache_max_age_ms: Optional[int] = None
    queue_retry_after_ms: Optional[int] = None
    alternative_tool: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FallbackConfig":
        return cls(
            strategy=FallbackStrategy(data.get("strategy", "manual_escalation")),
            cache_max_age_ms=data.get("cache_max_age_ms"),
            queue_retry_after_ms=data.get("queue_retry_after_ms"),
            alternative_tool=data.get("alternative_tool"),
        )


@dataclass(frozen=True)
class IdempotencyConfig:
    """``key_fields`` empty means every input field participates in the key."""
    required: bool = False
    key_fields: Tuple[str, ...] = ()
    ttl_seconds: int = 3_600

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdempotencyConfig":
        return cls(
            required=data.get("required", False),
            key_fields=tuple(data.get("key_fields", ())),
            ttl_seconds=data.get("ttl_seconds", 3_600),
        )


@dataclass(frozen=True)
class ResiliencePolicy:
    name: str
    retry: RetryConfig = field(default_factory=RetryConfig)
    timeout: TimeoutTier = TimeoutTier.STANDARD
    fallback: Optional[FallbackConfig] = None
    idempotency: IdempotencyConfig = field(default_factory=IdempotencyConfig)

    @property
    def timeout_ms(self) -> int:
        return self.timeout.timeout_ms

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ResiliencePolicy":
        fallback = data.get("fallback")
        return cls(
            name=name,
            retry=RetryConfig.from_dict(data.get("retry", {})),
            timeout=TimeoutTier(data.get("timeout", "standard")),
            fallback=FallbackConfig.from_dict(fallback) if fallback else None,
            idempotency=IdempotencyConfig.from_dict(data.get("idempotency", {})),
        )


# ---------------------------------------------------------------------------
# Call outcome
# ---------------------------------------------------------------------------

@dataclass
class ToolExecutionResult:
    """
    Outcome of one call through the executor.

    ``success`` is true for SUCCEEDED results, including results served
    from a fallback (``fallback_used``) or an idempotent replay.
    """
    tool_name: str
    status: ExecutionStatus
    data: Any = None
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None
    attempts: int = 0
    duration_ms: int = 0
    circuit_state: Optional[CircuitState] = None
    circuit_breaker_triggered: bool = False
    fallback_used: Optional[FallbackStrategy] = None
    substituted_tool: Optional[str] = None
    cache_age_ms: Optional[int] = None
    deferred_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    idempotent_replay: bool = False
    escalation_required: bool = False
    safety_halt: bool = False
    skipped: bool = False

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCEEDED

    @property
    def retries_used(self) -> int:
        return max(0, self.attempts - 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "status": self.status.value,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "error_category": self.error_category.value if self.error_category else None,
            "attempts": self.attempts,
            "retries_used": self.retries_used,
            "duration_ms": self.duration_ms,
            "circuit_state": self.circuit_state.value if self.circuit_state else None,
            "circuit_breaker_triggered": self.circuit_breaker_triggered,
            "fallback_used": self.fallback_used.value if self.fallback_used else None,
            "substituted_tool": self.substituted_tool,
            "cache_age_ms": self.cache_age_ms,
            "deferred_id": self.deferred_id,
            "idempotency_key": self.idempotency_key,
            "idempotent_replay": self.idempotent_replay,
            "escalation_required": self.escalation_required,
            "safety_halt": self.safety_halt,
            "skipped": self.skipped,
        }
