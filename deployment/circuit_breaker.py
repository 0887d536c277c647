"""
Circuit breaker pattern for semantic judge calls.
Stops hammering a degraded judge; rejected calls degrade per candidate.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from shared.config import get_settings

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitOpenError(Exception):
    """Raised when circuit breaker is open."""

    pass


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for external judge calls.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Too many failures, requests rejected immediately
    - HALF_OPEN: Testing recovery, limited requests allowed

    Usage:
        breaker = CircuitBreaker(failure_threshold=3)
        result = await breaker.call_async(judge.judge, query, excerpt)
    """

    failure_threshold: int = 5
    reset_timeout: float = 60.0
    half_open_max_calls: int = 3
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    # State tracking
    state: CircuitState = field(default=CircuitState.CLOSED)
    failures: int = field(default=0)
    successes: int = field(default=0)
    last_failure_time: Optional[float] = field(default=None)
    half_open_calls: int = field(default=0)

    def _should_allow_request(self) -> bool:
        """Check if request should be allowed based on circuit state."""
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if (
                self.last_failure_time is not None
                and (self.clock() - self.last_failure_time) >= self.reset_timeout
            ):
                self._transition_to_half_open()
                return True
            return False

        return self.half_open_calls < self.half_open_max_calls

    def _transition_to_open(self):
        logger.warning(f"Circuit breaker OPEN: {self.failures} failures in succession")
        self.state = CircuitState.OPEN
        self.last_failure_time = self.clock()

    def _transition_to_half_open(self):
        logger.info("Circuit breaker transitioning to HALF_OPEN")
        self.state = CircuitState.HALF_OPEN
        self.half_open_calls = 0
        self.successes = 0

    def _transition_to_closed(self):
        logger.info("Circuit breaker CLOSED: judge recovered")
        self.state = CircuitState.CLOSED
        self.failures = 0
        self.successes = 0
        self.half_open_calls = 0

    def _record_success(self):
        self.failures = 0

        if self.state == CircuitState.HALF_OPEN:
            self.successes += 1
            if self.successes >= self.half_open_max_calls:
                self._transition_to_closed()

    def _record_failure(self):
        self.failures += 1
        self.last_failure_time = self.clock()

        if self.state == CircuitState.HALF_OPEN:
            self._transition_to_open()
        elif self.state == CircuitState.CLOSED and self.failures >= self.failure_threshold:
            self._transition_to_open()

    async def call_async(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await a coroutine function with circuit breaker protection.

        Cancellation is not counted as a failure.

        Raises:
            CircuitOpenError: If circuit is open
            Exception: Original exception from function
        """
        if not self._should_allow_request():
            raise CircuitOpenError(f"Circuit is {self.state.value}")

        probe = self.state == CircuitState.HALF_OPEN
        if probe:
            self.half_open_calls += 1

        try:
            result = await fn(*args, **kwargs)
        except asyncio.CancelledError:
            # Hand the probe slot back; no verdict on the judge
            if probe and self.state == CircuitState.HALF_OPEN and self.half_open_calls > 0:
                self.half_open_calls -= 1
            raise
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        return {
            "state": self.state.value,
            "failures": self.failures,
            "successes": self.successes,
            "last_failure_time": self.last_failure_time,
            "half_open_calls": self.half_open_calls,
        }


# Global circuit breaker for the semantic judge
_judge_breaker: Optional[CircuitBreaker] = None


def get_judge_breaker() -> CircuitBreaker:
    """Get circuit breaker for semantic judge calls."""
    global _judge_breaker
    if _judge_breaker is None:
        config = get_settings().breaker
        _judge_breaker = CircuitBreaker(
            failure_threshold=config.failure_threshold,
            reset_timeout=config.reset_timeout,
            half_open_max_calls=config.half_open_max_calls,
        )
    return _judge_breaker
