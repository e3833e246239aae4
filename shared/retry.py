"""
Retry helpers for calls to remote collaborators.
"""

import asyncio
import functools
import random
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from shared.logging import get_logger


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 0.5,
                 max_delay: float = 10.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter:
            spread = delay * 0.1
            delay += random.uniform(-spread, spread)
        return max(0.0, delay)


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def retry_on_exception(exceptions: Tuple[Type[BaseException], ...] = (Exception,),
                       config: Optional[RetryConfig] = None) -> Callable:
    """Retry an async callable when it raises one of ``exceptions``.

    Exceptions outside ``exceptions`` propagate immediately. Once the attempts
    are used up a :class:`RetryError` wrapping the last failure is raised.
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        logger = get_logger(f"retry.{func.__name__}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            for attempt in range(1, config.max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)
                except exceptions as exc:
                    if attempt == config.max_attempts:
                        logger.error(
                            "All retry attempts exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(exc),
                        )
                        raise RetryError(
                            f"{func.__name__} failed after {attempt} attempts",
                            last_exception=exc,
                            attempts=attempt,
                        ) from exc

                    delay = config.delay_for(attempt)
                    logger.warning(
                        "Attempt failed, retrying",
                        function=func.__name__,
                        attempt=attempt,
                        delay=round(delay, 3),
                        error=str(exc),
                    )
                    await asyncio.sleep(delay)
                    continue

                if attempt > 1:
                    logger.info("Retry succeeded", function=func.__name__, attempt=attempt)
                return result

        return wrapper

    return decorator
