"""
Failure Injection Tests.

Validates resilience against payment collaborator failures.
"""

import asyncio
import pytest

from campus_parking.app.core.reliability import (
    CircuitBreaker,
    CircuitOpenError,
    RetryExhaustedError,
    backoff_delay,
    retry_async,
)
from campus_parking.app.services.payments import InMemoryPaymentGateway, PaymentError, PaymentService


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=1)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    # Threshold reached
    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_recovers_after_timeout():
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=0)

    async def failing_func():
        raise ValueError("Boom")

    async def ok():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    await asyncio.sleep(0.01)
    assert await cb.call(ok) == "ok"
    assert cb.state == "CLOSED"


def test_backoff_is_exponential_and_capped():
    assert [backoff_delay(n, 0.5, 3.0) for n in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failures():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset by peer")
        return "done"

    result = await retry_async(flaky, operation="flaky", attempts=3, base_delay=0, max_delay=0)

    assert result == "done"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_bounded_attempts():
    calls = []

    async def broken():
        calls.append(1)
        raise ConnectionError("down")

    with pytest.raises(RetryExhaustedError) as exc_info:
        await retry_async(broken, operation="broken", attempts=4, base_delay=0, max_delay=0)

    assert len(calls) == 4
    assert exc_info.value.attempts == 4
    assert isinstance(exc_info.value.last_error, ConnectionError)


@pytest.mark.asyncio
async def test_retry_does_not_swallow_unexpected_errors():
    calls = []

    async def buggy():
        calls.append(1)
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await retry_async(buggy, operation="buggy", attempts=3, base_delay=0, retry_on=(ConnectionError,))
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_slow_call_times_out_and_counts_as_failure():
    async def hang():
        await asyncio.sleep(1)

    with pytest.raises(RetryExhaustedError) as exc_info:
        await retry_async(hang, operation="hang", attempts=2, base_delay=0, max_delay=0, timeout=0.01)

    assert isinstance(exc_info.value.last_error, asyncio.TimeoutError)


@pytest.mark.asyncio
async def test_payment_service_wraps_exhaustion(db_session):
    gateway = InMemoryPaymentGateway(latency=0.5)
    service = PaymentService(gateway, attempts=2, base_delay=0, max_delay=0, timeout=0.01)

    class FakeRental:
        id = 1
        price = 10.0

    with pytest.raises(PaymentError) as exc_info:
        await service.authorize(db_session, FakeRental())

    assert exc_info.value.status_code == 502
    assert exc_info.value.details["collaborator"] == "payment"
    assert exc_info.value.details["operation"] == "AUTHORIZE"


@pytest.mark.asyncio
async def test_open_circuit_fails_fast(db_session):
    gateway = InMemoryPaymentGateway()
    breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60)
    service = PaymentService(gateway, breaker=breaker, attempts=2, base_delay=0, max_delay=0)
    gateway.fail_next("authorize", 2)

    class FakeRental:
        id = 1
        price = 10.0

    with pytest.raises(PaymentError):
        await service.authorize(db_session, FakeRental())
    assert breaker.state == "OPEN"

    with pytest.raises(PaymentError) as exc_info:
        await service.authorize(db_session, FakeRental())
    assert exc_info.value.message == "Payment provider unavailable"
    assert gateway.calls == []
