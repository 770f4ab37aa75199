"""Per-service circuit breakers for resilient tool execution.

States:
    CLOSED: Normal operation, calls pass through
    OPEN: Circuit is tripped, calls fail fast without execution
    HALF_OPEN: A bounded number of probe calls test whether the service recovered

Failures are counted within a fixed window that starts at the first failure
after the previous window lapsed. Every read-modify-write of one service's
status happens under that service's lock, so concurrent callers cannot open
(or close) the same circuit inconsistently.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from ..clock import Clock, now_ms
from .models import CircuitBreakerConfig, CircuitState
from .policies import ResiliencePolicyStore

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreakerStatus:
    """Mutable state for a single service's breaker."""
    service: str
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    window_start_ms: Optional[int] = None
    opened_at_ms: Optional[int] = None
    half_open_attempts: int = 0
    total_calls: int = 0
    total_failures: int = 0
    total_short_circuits: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "window_start_ms": self.window_start_ms,
            "opened_at_ms": self.opened_at_ms,
            "half_open_attempts": self.half_open_attempts,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_short_circuits": self.total_short_circuits,
        }


class CircuitOpenError(Exception):
    """Raised when a call is blocked by an open circuit breaker."""

    def __init__(self, service: str, retry_after_ms: int) -> None:
        self.service = service
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"Circuit breaker OPEN for '{service}'. "
            f"Retry after {retry_after_ms / 1000:.1f}s."
        )


class CircuitBreakerRegistry:
    """Registry of circuit breakers keyed by external service name."""

    def __init__(
        self,
        policies: Optional[ResiliencePolicyStore] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._policies = policies or ResiliencePolicyStore()
        self._clock = clock or now_ms
        self._overrides: Dict[str, CircuitBreakerConfig] = {}
        self._statuses: Dict[str, CircuitBreakerStatus] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def configure(self, service: str, config: CircuitBreakerConfig) -> None:
        """Set custom configuration for a specific service."""
        self._overrides[service] = config

    def get_config(self, service: str) -> CircuitBreakerConfig:
        if service in self._overrides:
            return self._overrides[service]
        return self._policies.get_breaker_config(service)

    def _status(self, service: str) -> CircuitBreakerStatus:
        if service not in self._statuses:
            self._statuses[service] = CircuitBreakerStatus(service=service)
        return self._statuses[service]

    def _lock(self, service: str) -> asyncio.Lock:
        if service not in self._locks:
            self._locks[service] = asyncio.Lock()
        return self._locks[service]

    # ------------------------------------------------------------------
    # Call hooks
    # ------------------------------------------------------------------

    async def before_call(self, service: str) -> CircuitState:
        """Admit or reject a call. Returns the state the call was admitted in.

        Raises:
            CircuitOpenError: If the circuit is open, or half-open with its
                probe quota used up.
        """
        async with self._lock(service):
            status = self._status(service)
            config = self.get_config(service)
            now = self._clock()
            status.total_calls += 1

            if status.state == CircuitState.OPEN:
                elapsed = now - (status.opened_at_ms or now)
                if elapsed < config.half_open_after_ms:
                    status.total_short_circuits += 1
                    raise CircuitOpenError(service, config.half_open_after_ms - elapsed)
                status.state = CircuitState.HALF_OPEN
                status.half_open_attempts = 0
                logger.info(
                    f"Circuit breaker HALF_OPEN for '{service}' "
                    f"(after {elapsed / 1000:.1f}s)"
                )

            if status.state == CircuitState.HALF_OPEN:
                if status.half_open_attempts >= config.half_open_max_attempts:
                    status.total_short_circuits += 1
                    raise CircuitOpenError(service, config.half_open_after_ms)
                status.half_open_attempts += 1

            return status.state

    async def record_success(self, service: str) -> None:
        async with self._lock(service):
            status = self._status(service)
            if status.state == CircuitState.HALF_OPEN:
                status.state = CircuitState.CLOSED
                status.failure_count = 0
                status.window_start_ms = None
                status.opened_at_ms = None
                status.half_open_attempts = 0
                logger.info(f"Circuit breaker CLOSED for '{service}' (recovered)")

    async def record_failure(self, service: str) -> None:
        async with self._lock(service):
            status = self._status(service)
            config = self.get_config(service)
            now = self._clock()
            status.total_failures += 1

            if status.state == CircuitState.HALF_OPEN:
                status.state = CircuitState.OPEN
                status.opened_at_ms = now
                status.window_start_ms = now
                status.failure_count = config.failure_threshold
                status.half_open_attempts = 0
                logger.warning(
                    f"Circuit breaker re-OPENED for '{service}' "
                    "(probe failed during half-open)"
                )
                return

            if status.state == CircuitState.OPEN:
                # A call admitted before the circuit opened; already counted
                return

            if (
                status.window_start_ms is None
                or now - status.window_start_ms >= config.failure_window_ms
            ):
                status.window_start_ms = now
                status.failure_count = 0
            status.failure_count += 1
            if status.failure_count >= config.failure_threshold:
                status.state = CircuitState.OPEN
                status.opened_at_ms = now
                logger.warning(
                    f"Circuit breaker OPENED for '{service}' "
                    f"({status.failure_count} failures within "
                    f"{config.failure_window_ms / 1000:.0f}s)"
                )

    async def release_probe(self, service: str) -> None:
        """Return an unused half-open slot (the admitted call never ran)."""
        async with self._lock(service):
            status = self._status(service)
            if status.state == CircuitState.HALF_OPEN and status.half_open_attempts > 0:
                status.half_open_attempts -= 1

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_status(self, service: str) -> CircuitBreakerStatus:
        """Snapshot of a service's breaker (a copy, safe to hold)."""
        return replace(self._status(service))

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        return {name: self._statuses[name].to_dict() for name in sorted(self._statuses)}

    def get_open_circuits(self) -> List[str]:
        return sorted(
            name for name, status in self._statuses.items()
            if status.state == CircuitState.OPEN
        )

    def reset(self, service: Optional[str] = None) -> None:
        """Forget breaker state for one service, or all of them."""
        if service is None:
            self._statuses.clear()
        else:
            self._statuses.pop(service, None)
