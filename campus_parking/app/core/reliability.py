"""
Reliability Utilities.

Circuit Breaker and bounded retry with exponential backoff for calls
to external collaborators.
"""

import time
import asyncio
import logging
from typing import Awaitable, Callable, Any, Tuple, Type

logger = logging.getLogger("campus_parking.reliability")


class CircuitOpenError(Exception):
    pass


class RetryExhaustedError(Exception):
    """Raised when every attempt of a retried call failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error!r}")


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' failures occur within 'reset_timeout',
    the circuit opens and rejects calls for 'reset_timeout' seconds.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED" # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
            if self.state == "HALF_OPEN":
                self.reset_state()
            return result
        except Exception:
            self.record_failure()
            raise

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (0-based): base * 2**attempt, capped."""
    return min(max_delay, base_delay * (2 ** attempt))


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    *,
    operation: str,
    attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    timeout: float = 10.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> Any:
    """
    Run `func` until it succeeds or `attempts` calls have failed.

    Each attempt is bounded by `timeout`; a timeout counts as a failure.
    Exceptions outside `retry_on` propagate immediately.

    Raises:
        RetryExhaustedError: wrapping the last failure
    """
    last_error: BaseException = None

    for attempt in range(attempts):
        try:
            result = await asyncio.wait_for(func(), timeout=timeout)
            if attempt > 0:
                logger.info("%s succeeded on retry %d", operation, attempt)
            return result
        except (asyncio.TimeoutError, *retry_on) as e:
            last_error = e
            if attempt < attempts - 1:
                delay = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %r",
                    operation, attempt + 1, attempts, delay, e,
                    extra={"operation": operation, "attempt": attempt + 1},
                )
                await asyncio.sleep(delay)

    logger.error(
        "%s failed after %d attempts: %r", operation, attempts, last_error,
        extra={"operation": operation, "attempts": attempts},
    )
    raise RetryExhaustedError(operation, attempts, last_error)
