"""
Steward Resilience - timeout, retry, circuit breaker, idempotency and fallback
"""

from .circuit_breaker import CircuitBreakerRegistry, CircuitBreakerStatus, CircuitOpenError
from .classifier import classify_exception, classify_message, classify_result
from .executor import ResilientToolExecutor
from .fallback import DeferredCall, DeferredQueue, ResultCache
from .idempotency import (
    IdempotencyGuard,
    IdempotencyRecord,
    IdempotencyStore,
    MemoryIdempotencyStore,
    PostgreSQLIdempotencyStore,
    canonical_json,
    compute_idempotency_key,
)
from .models import (
    CircuitBreakerConfig,
    CircuitState,
    ErrorCategory,
    ExecutionStatus,
    FallbackConfig,
    FallbackStrategy,
    IdempotencyConfig,
    ResiliencePolicy,
    RetryConfig,
    TimeoutTier,
    ToolExecutionResult,
)
from .policies import (
    CIRCUIT_BREAKER_CONFIGS,
    NOTIFICATION_FALLBACK_CHAIN,
    RESILIENCE_PRESETS,
    NotificationChannel,
    ResiliencePolicyStore,
)

__all__ = [
    "CIRCUIT_BREAKER_CONFIGS",
    "NOTIFICATION_FALLBACK_CHAIN",
    "RESILIENCE_PRESETS",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitBreakerStatus",
    "CircuitOpenError",
    "CircuitState",
    "DeferredCall",
    "DeferredQueue",
    "ErrorCategory",
    "ExecutionStatus",
    "FallbackConfig",
    "FallbackStrategy",
    "IdempotencyConfig",
    "IdempotencyGuard",
    "IdempotencyRecord",
    "IdempotencyStore",
    "MemoryIdempotencyStore",
    "NotificationChannel",
    "PostgreSQLIdempotencyStore",
    "ResiliencePolicy",
    "ResiliencePolicyStore",
    "ResilientToolExecutor",
    "ResultCache",
    "RetryConfig",
    "TimeoutTier",
    "ToolExecutionResult",
    "canonical_json",
    "classify_exception",
    "classify_message",
    "classify_result",
    "compute_idempotency_key",
]
