"""
Circuit breaker guarding calls to the upstream lookup service.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised when a call is rejected because the breaker is open."""
    pass


class CircuitBreaker:
    """Stops calling a failing collaborator until a recovery window passes."""

    def __init__(self,
                 name: str,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 30.0,
                 clock: Optional[Callable[[], float]] = None):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock or time.monotonic
        self.logger = get_logger(f"circuit_breaker.{name}")

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitBreakerState:
        if (
            self._state == CircuitBreakerState.OPEN
            and self._clock() - self._opened_at >= self.recovery_timeout
        ):
            self._state = CircuitBreakerState.HALF_OPEN
            self.logger.info("Circuit breaker half-open, probing upstream")
        return self._state

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Execute ``func`` unless the breaker is open."""
        if self.state == CircuitBreakerState.OPEN:
            raise CircuitBreakerOpenError(f"Circuit breaker '{self.name}' is open")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise

        if self._state != CircuitBreakerState.CLOSED or self._failure_count:
            self.logger.info("Circuit breaker closed after successful call")
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        return result

    def _record_failure(self):
        self._failure_count += 1
        if self._state == CircuitBreakerState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitBreakerState.OPEN
            self._opened_at = self._clock()
            self.logger.warning(
                "Circuit breaker opened",
                failure_count=self._failure_count,
                threshold=self.failure_threshold,
            )

    def get_state(self) -> Dict[str, Any]:
        """Snapshot of the breaker for status endpoints."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }

    def is_open(self) -> bool:
        return self.state == CircuitBreakerState.OPEN
