"""Retry with exponential backoff for startup-time dependency checks."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, last_exception: Exception, attempts: int) -> None:
        self.last_exception = last_exception
        self.attempts = attempts
        super().__init__(f"Failed after {attempts} attempts. Last error: {last_exception}")


def backoff_delay(
    attempt: int,
    *,
    initial_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before retry number ``attempt`` (0-indexed)."""
    delay = min(initial_delay * (exponential_base**attempt), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


def retry[T](
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator retrying an async function with exponential backoff.

    Example:
        @retry(max_attempts=5, initial_delay=1.0, exceptions=(OSError,))
        async def ping_database() -> None:
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts - 1:
                        logger.error(
                            "All retry attempts exhausted",
                            extra={"function": func.__name__, "attempts": max_attempts},
                        )
                        raise RetryError(e, max_attempts) from e

                    delay = backoff_delay(
                        attempt,
                        initial_delay=initial_delay,
                        max_delay=max_delay,
                        exponential_base=exponential_base,
                        jitter=jitter,
                    )
                    logger.warning(
                        "Retrying after failure",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt + 1,
                            "max_attempts": max_attempts,
                            "delay": round(delay, 2),
                            "exception": str(e),
                        },
                    )
                    await asyncio.sleep(delay)
            raise RuntimeError("retry called with max_attempts < 1")

        return wrapper

    return decorator
