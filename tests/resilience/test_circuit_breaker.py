"""Tests for steward.resilience.circuit_breaker.CircuitBreakerRegistry

Uses the stripe breaker (3 failures in 60s opens, half-open after 30s,
one probe) unless noted.
"""

import asyncio

import pytest

from steward.resilience.circuit_breaker import CircuitBreakerRegistry, CircuitOpenError
from steward.resilience.models import CircuitBreakerConfig, CircuitState


@pytest.fixture
def registry(clock):
    return CircuitBreakerRegistry(clock=clock)


async def _fail(registry, service, clock=None, advance_ms=0):
    await registry.before_call(service)
    await registry.record_failure(service)
    if clock is not None and advance_ms:
        clock.advance(advance_ms)


async def _open_stripe(registry, clock):
    """Failures at t=0s, 10s and 20s; returns with the clock at 20s."""
    await _fail(registry, "stripe", clock, 10_000)
    await _fail(registry, "stripe", clock, 10_000)
    await _fail(registry, "stripe")


class TestOpening:

    async def test_opens_at_threshold_within_window(self, registry, clock):
        await _open_stripe(registry, clock)
        status = registry.get_status("stripe")
        assert status.state == CircuitState.OPEN
        assert status.failure_count == 3
        assert status.opened_at_ms == clock.now
        assert registry.get_open_circuits() == ["stripe"]

    async def test_stays_closed_below_threshold(self, registry, clock):
        await _fail(registry, "stripe", clock, 10_000)
        await _fail(registry, "stripe")
        assert registry.get_status("stripe").state == CircuitState.CLOSED

    async def test_failures_outside_window_do_not_accumulate(self, registry, clock):
        await _fail(registry, "stripe", clock, 30_000)
        await _fail(registry, "stripe", clock, 31_000)
        # 61s after the first failure: a new window starts
        await _fail(registry, "stripe")
        status = registry.get_status("stripe")
        assert status.state == CircuitState.CLOSED
        assert status.failure_count == 1

    async def test_unknown_service_uses_default_config(self, registry):
        for _ in range(4):
            await _fail(registry, "some_api")
        assert registry.get_status("some_api").state == CircuitState.CLOSED
        await _fail(registry, "some_api")
        assert registry.get_status("some_api").state == CircuitState.OPEN

    async def test_configure_overrides_policy(self, registry):
        registry.configure("stripe", CircuitBreakerConfig(failure_threshold=1))
        await _fail(registry, "stripe")
        assert registry.get_status("stripe").state == CircuitState.OPEN

    async def test_concurrent_failures_open_once(self, registry):
        await asyncio.gather(*(registry.record_failure("twilio") for _ in range(10)))
        status = registry.get_status("twilio")
        assert status.state == CircuitState.OPEN
        assert status.failure_count == 5
        assert status.total_failures == 10


class TestOpenAndHalfOpen:

    async def test_fails_fast_until_half_open_time(self, registry, clock):
        await _open_stripe(registry, clock)
        clock.advance(29_999)
        with pytest.raises(CircuitOpenError) as exc_info:
            await registry.before_call("stripe")
        assert exc_info.value.service == "stripe"
        assert exc_info.value.retry_after_ms == 1
        assert registry.get_status("stripe").total_short_circuits == 1

    async def test_half_open_after_recovery_time(self, registry, clock):
        await _open_stripe(registry, clock)
        clock.advance(30_000)
        state = await registry.before_call("stripe")
        assert state == CircuitState.HALF_OPEN

    async def test_half_open_admits_limited_probes(self, registry, clock):
        await _open_stripe(registry, clock)
        clock.advance(30_000)
        await registry.before_call("stripe")
        with pytest.raises(CircuitOpenError):
            await registry.before_call("stripe")

    async def test_probe_success_closes(self, registry, clock):
        await _open_stripe(registry, clock)
        clock.advance(30_000)
        await registry.before_call("stripe")
        await registry.record_success("stripe")
        status = registry.get_status("stripe")
        assert status.state == CircuitState.CLOSED
        assert status.failure_count == 0
        assert registry.get_open_circuits() == []

    async def test_probe_failure_reopens(self, registry, clock):
        await _open_stripe(registry, clock)
        clock.advance(30_000)
        await registry.before_call("stripe")
        await registry.record_failure("stripe")
        status = registry.get_status("stripe")
        assert status.state == CircuitState.OPEN
        assert status.opened_at_ms == clock.now
        with pytest.raises(CircuitOpenError):
            await registry.before_call("stripe")

    async def test_released_probe_can_be_reused(self, registry, clock):
        await _open_stripe(registry, clock)
        clock.advance(30_000)
        await registry.before_call("stripe")
        await registry.release_probe("stripe")
        assert await registry.before_call("stripe") == CircuitState.HALF_OPEN

    async def test_twilio_allows_two_probes(self, registry, clock):
        for _ in range(5):
            await _fail(registry, "twilio")
        clock.advance(30_000)
        await registry.before_call("twilio")
        await registry.before_call("twilio")
        with pytest.raises(CircuitOpenError):
            await registry.before_call("twilio")


class TestInspection:

    async def test_status_is_a_copy(self, registry):
        status = registry.get_status("stripe")
        status.failure_count = 99
        assert registry.get_status("stripe").failure_count == 0

    async def test_reset_one_service(self, registry, clock):
        await _open_stripe(registry, clock)
        registry.reset("stripe")
        assert registry.get_status("stripe").state == CircuitState.CLOSED

    async def test_get_all_status(self, registry):
        await _fail(registry, "stripe")
        await _fail(registry, "domain")
        statuses = registry.get_all_status()
        assert list(statuses) == ["domain", "stripe"]
        assert statuses["stripe"]["failure_count"] == 1
