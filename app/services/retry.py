"""
Bounded retry for flaky async calls.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "call",
) -> T:
    """
    Await `fn()` up to `attempts` times, sleeping `delay` seconds between
    failures. Exceptions outside `retry_on` propagate immediately; the last
    retryable exception propagates once attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise
            logger.warning(f"{description} attempt {attempt}/{attempts} failed: {e}")
            if delay > 0:
                await asyncio.sleep(delay)

    raise AssertionError("unreachable")
