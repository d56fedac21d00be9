"""
Cache Circuit Breaker

Stops calling Redis after repeated connection failures so that an outage
costs one fast exception per read instead of one socket timeout.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from ...domain.cache.exceptions import CacheCircuitOpenException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Letting a trial call through


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5
    recovery_timeout: float = 30.0

    # Exception types that count as store failures
    failure_exceptions: tuple = (
        ConnectionError,
        TimeoutError,
        OSError,
    )


class CacheCircuitBreaker:
    """
    Circuit breaker for cache store calls.

    CLOSED counts consecutive failures; at ``failure_threshold`` it opens.
    OPEN rejects calls with CacheCircuitOpenException until
    ``recovery_timeout`` has elapsed, then lets one HALF_OPEN trial through.
    Calls arriving while that trial is in flight are rejected as if the
    circuit were still open. A successful trial closes the circuit, a failed
    one reopens it.
    """

    def __init__(self, config: Optional[CircuitBreakerConfig] = None):
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.rejected_calls = 0
        self.trial_in_flight = False
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Execute an async callable with circuit breaker protection.

        Raises:
            CacheCircuitOpenException: If the circuit is open
            Exception: Original exception from the call
        """
        async with self._lock:
            if self.state == CircuitState.OPEN and self._recovery_elapsed():
                self.state = CircuitState.HALF_OPEN
                logger.info("Cache circuit breaker half-open, trying store")

            if self.state == CircuitState.OPEN or (
                self.state == CircuitState.HALF_OPEN and self.trial_in_flight
            ):
                self.rejected_calls += 1
                raise CacheCircuitOpenException()

            is_trial = self.state == CircuitState.HALF_OPEN
            if is_trial:
                self.trial_in_flight = True

        try:
            result = await func(*args, **kwargs)
        except self.config.failure_exceptions as e:
            await self._record_failure(e)
            raise
        finally:
            if is_trial:
                self.trial_in_flight = False

        await self._record_success()
        return result

    def _recovery_elapsed(self) -> bool:
        if self.opened_at is None:
            return True
        return time.monotonic() - self.opened_at >= self.config.recovery_timeout

    async def _record_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.info("Cache circuit breaker closed after successful trial")
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.opened_at = None

    async def _record_failure(self, error: Exception) -> None:
        async with self._lock:
            self.failure_count += 1
            should_open = (
                self.state == CircuitState.HALF_OPEN
                or self.failure_count >= self.config.failure_threshold
            )
            if should_open and self.state != CircuitState.OPEN:
                self.state = CircuitState.OPEN
                self.opened_at = time.monotonic()
                logger.warning(
                    "Cache circuit breaker opened",
                    extra={
                        "failure_count": self.failure_count,
                        "failure_type": type(error).__name__,
                    },
                )

    def get_status(self) -> dict:
        """Current circuit breaker status for monitoring."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "rejected_calls": self.rejected_calls,
            "trial_in_flight": self.trial_in_flight,
            "failure_threshold": self.config.failure_threshold,
            "recovery_timeout": self.config.recovery_timeout,
        }

    async def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        async with self._lock:
            self.state = CircuitState.CLOSED
            self.trial_in_flight = False
            self.failure_count = 0
            self.opened_at = None
            logger.info("Cache circuit breaker manually reset")
