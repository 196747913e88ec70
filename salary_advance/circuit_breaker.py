"""
Circuit breaker guarding request-store calls.

When the store keeps failing, callers get an immediate StoreUnavailable
instead of waiting on every request for the same outage.
"""

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from salary_advance.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class CircuitBreakerOpenError(StoreUnavailable):
    """Raised when the breaker refuses a call without attempting it."""


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Calls pass through
    OPEN = "open"  # Calls refused
    HALF_OPEN = "half_open"  # One trial call allowed


class CircuitBreaker:
    """
    Three-state breaker.

    - CLOSED -> OPEN after failure_threshold consecutive failures
    - OPEN -> HALF_OPEN once timeout seconds have passed
    - HALF_OPEN -> CLOSED on a successful trial call
    - HALF_OPEN -> OPEN on a failed trial call

    Only exceptions of the types in `trip_on` count as failures; anything
    else (a domain conflict raised by the store, say) passes through and
    leaves the breaker untouched.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        name: str = "CircuitBreaker",
        trip_on: tuple[type[BaseException], ...] = (Exception,),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.name = name
        self.trip_on = trip_on
        self._clock = clock

        self.failure_count = 0
        self.state = CircuitState.CLOSED
        self.opened_at: float | None = None

        logger.info(
            f"CircuitBreaker '{name}' initialized: "
            f"threshold={failure_threshold}, timeout={timeout}s"
        )

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Run func under breaker protection."""
        self._before_call()

        try:
            result = func(*args, **kwargs)
        except self.trip_on as e:
            self._record_failure(e)
            raise

        self._record_success()
        return result

    def _before_call(self):
        if self.state != CircuitState.OPEN:
            return

        if self.opened_at is not None and self._clock() - self.opened_at < self.timeout:
            raise CircuitBreakerOpenError(
                f"CircuitBreaker '{self.name}' is OPEN. Request store unavailable."
            )

        logger.info(f"CircuitBreaker '{self.name}': OPEN -> HALF_OPEN")
        self.state = CircuitState.HALF_OPEN

    def _record_success(self):
        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"CircuitBreaker '{self.name}': HALF_OPEN -> CLOSED")
        self.failure_count = 0
        self.state = CircuitState.CLOSED
        self.opened_at = None

    def _record_failure(self, error: BaseException):
        self.failure_count += 1
        logger.error(
            f"CircuitBreaker '{self.name}' failure "
            f"({self.failure_count}/{self.failure_threshold}): {error}"
        )

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            logger.warning(f"CircuitBreaker '{self.name}': {self.state.name} -> OPEN")
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()

    def get_state(self) -> dict:
        """Breaker state for the health endpoint."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "opened_at": self.opened_at,
        }
