"""
Retry Utilities.

Provides retry with exponential backoff for storage operations.
"""

import asyncio
import functools
import logging
import random
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Create decorator for retrying coroutine functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        jitter: Whether to add random jitter to delays
        exceptions: Tuple of exceptions to catch and retry
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        logger.error("Failed after %d attempts: %s", max_retries + 1, e)
                        raise

                    if jitter:
                        actual_delay = delay * (0.5 + random.random())
                    else:
                        actual_delay = delay

                    logger.warning(
                        "Attempt %d failed: %s. Retrying in %.2f seconds...",
                        attempt + 1,
                        e,
                        actual_delay,
                    )

                    await asyncio.sleep(actual_delay)

                    # Calculate next delay
                    delay = min(delay * exponential_base, max_delay)

            raise RuntimeError("Retry loop exited without a result")

        return async_wrapper

    return decorator


__all__ = ["retry_with_backoff"]
