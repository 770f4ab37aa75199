"""
Resilience policy store - named policies, per-service breaker settings and
the notification channel chain.

Everything here is static configuration: loaded at startup, optionally
overlaid from the ``resilience`` section of the engine config, then only
read.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..constants import (
    SERVICE_BOND_STATE,
    SERVICE_CLAUDE_API,
    SERVICE_DOCUSIGN,
    SERVICE_DOMAIN,
    SERVICE_EQUIFAX,
    SERVICE_EXPO_PUSH,
    SERVICE_HIPAGES,
    SERVICE_REA,
    SERVICE_SENDGRID,
    SERVICE_STRIPE,
    SERVICE_SUPABASE,
    SERVICE_TICA,
    SERVICE_TWILIO,
)
from .models import (
    CircuitBreakerConfig,
    ErrorCategory,
    FallbackConfig,
    FallbackStrategy,
    IdempotencyConfig,
    ResiliencePolicy,
    RetryConfig,
    TimeoutTier,
)

logger = logging.getLogger(__name__)

_T = ErrorCategory.TRANSIENT
_D = ErrorCategory.DEGRADED

RESILIENCE_PRESETS: Dict[str, ResiliencePolicy] = {
    "query": ResiliencePolicy(
        name="query",
        retry=RetryConfig(3, 1_000, 4_000, 2.0, 200, frozenset({_T, _D})),
        timeout=TimeoutTier.FAST,
        fallback=FallbackConfig(FallbackStrategy.CACHE, cache_max_age_ms=300_000),
        idempotency=IdempotencyConfig(required=False),
    ),
    "action": ResiliencePolicy(
        name="action",
        retry=RetryConfig(2, 2_000, 4_000, 2.0, 500, frozenset({_T})),
        timeout=TimeoutTier.STANDARD,
        fallback=FallbackConfig(FallbackStrategy.MANUAL_ESCALATION),
        idempotency=IdempotencyConfig(required=True, ttl_seconds=3_600),
    ),
    "generate": ResiliencePolicy(
        name="generate",
        retry=RetryConfig(2, 3_000, 6_000, 2.0, 500, frozenset({_T, _D})),
        timeout=TimeoutTier.EXTENDED,
        fallback=FallbackConfig(FallbackStrategy.MANUAL_ESCALATION),
        idempotency=IdempotencyConfig(required=False),
    ),
    "integration": ResiliencePolicy(
        name="integration",
        retry=RetryConfig(3, 5_000, 45_000, 3.0, 1_000, frozenset({_T, _D})),
        timeout=TimeoutTier.EXTENDED,
        fallback=FallbackConfig(FallbackStrategy.QUEUE, queue_retry_after_ms=300_000),
        idempotency=IdempotencyConfig(required=True, ttl_seconds=3_600),
    ),
    "payment": ResiliencePolicy(
        name="payment",
        retry=RetryConfig(1, 5_000, 5_000, 1.0, 0, frozenset({_T})),
        timeout=TimeoutTier.EXTENDED,
        fallback=FallbackConfig(FallbackStrategy.MANUAL_ESCALATION),
        idempotency=IdempotencyConfig(required=True, ttl_seconds=86_400),
    ),
    "workflow": ResiliencePolicy(
        name="workflow",
        retry=RetryConfig(1, 1_000, 1_000, 1.0, 0, frozenset()),
        timeout=TimeoutTier.WORKFLOW,
        fallback=FallbackConfig(FallbackStrategy.MANUAL_ESCALATION),
        idempotency=IdempotencyConfig(required=False),
    ),
}

CIRCUIT_BREAKER_CONFIGS: Dict[str, CircuitBreakerConfig] = {
    SERVICE_STRIPE: CircuitBreakerConfig(3, 60_000, 30_000, 1),
    SERVICE_TWILIO: CircuitBreakerConfig(5, 60_000, 30_000, 2),
    SERVICE_SENDGRID: CircuitBreakerConfig(5, 60_000, 30_000, 2),
    SERVICE_EQUIFAX: CircuitBreakerConfig(3, 120_000, 60_000, 1),
    SERVICE_TICA: CircuitBreakerConfig(3, 120_000, 60_000, 1),
    SERVICE_DOCUSIGN: CircuitBreakerConfig(3, 120_000, 60_000, 1),
    SERVICE_DOMAIN: CircuitBreakerConfig(5, 300_000, 120_000, 1),
    SERVICE_REA: CircuitBreakerConfig(5, 300_000, 120_000, 1),
    SERVICE_HIPAGES: CircuitBreakerConfig(5, 300_000, 120_000, 1),
    SERVICE_BOND_STATE: CircuitBreakerConfig(3, 300_000, 300_000, 1),
    SERVICE_CLAUDE_API: CircuitBreakerConfig(3, 60_000, 30_000, 1),
    SERVICE_SUPABASE: CircuitBreakerConfig(5, 30_000, 10_000, 3),
    SERVICE_EXPO_PUSH: CircuitBreakerConfig(10, 60_000, 15_000, 3),
}

DEFAULT_CIRCUIT_BREAKER = CircuitBreakerConfig()


@dataclass(frozen=True)
class NotificationChannel:
    """One rung of the notification ladder; ``tool_name`` None means in-app only."""
    channel: str
    tool_name: Optional[str]
    timeout_ms: int


NOTIFICATION_FALLBACK_CHAIN: List[NotificationChannel] = [
    NotificationChannel("push", "send_push_expo", 8_000),
    NotificationChannel("sms", "send_sms_twilio", 10_000),
    NotificationChannel("email", "send_email_sendgrid", 15_000),
    NotificationChannel("in_app", None, 0),
]


class ResiliencePolicyStore:
    """
    Read-only lookup for resilience policies and circuit breaker configs.

    Usage:
        store = ResiliencePolicyStore.from_config(config.get("resilience", {}))
        policy = store.get_policy(tool.resilience_policy)
    """

    def __init__(
        self,
        policies: Optional[Dict[str, ResiliencePolicy]] = None,
        breakers: Optional[Dict[str, CircuitBreakerConfig]] = None,
    ):
        self._policies = dict(RESILIENCE_PRESETS if policies is None else policies)
        self._breakers = dict(CIRCUIT_BREAKER_CONFIGS if breakers is None else breakers)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "ResiliencePolicyStore":
        """
        Built-in presets overlaid with a config section like::

            policies:
              query: {retry: {max_attempts: 2}, timeout: fast}
            circuit_breakers:
              stripe: {failure_threshold: 2}
        """
        store = cls()
        config = config or {}
        for name, data in (config.get("policies") or {}).items():
            store._policies[name] = ResiliencePolicy.from_dict(name, data)
            logger.info(f"Resilience policy '{name}' loaded from config")
        for service, data in (config.get("circuit_breakers") or {}).items():
            store._breakers[service] = CircuitBreakerConfig.from_dict(data)
        return store

    def get_policy(self, name: str) -> ResiliencePolicy:
        try:
            return self._policies[name]
        except KeyError:
            raise KeyError(f"Unknown resilience policy: {name}") from None

    def has_policy(self, name: str) -> bool:
        return name in self._policies

    def get_breaker_config(self, service: str) -> CircuitBreakerConfig:
        return self._breakers.get(service, DEFAULT_CIRCUIT_BREAKER)

    @property
    def breaker_configs(self) -> Dict[str, CircuitBreakerConfig]:
        return dict(self._breakers)

    @property
    def policy_names(self) -> List[str]:
        return sorted(self._policies)
