"""Bounded retry with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from depthbook.errors import FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, initial_delay: float, multiplier: float) -> float:
    """Delay before the retry that follows a failed attempt (1-based)."""
    return initial_delay * multiplier ** (attempt - 1)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    initial_delay: float,
    multiplier: float,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """
    Run operation up to max_attempts times.

    Schedule for initial_delay=1s, multiplier=2:
    - Attempt 1: immediate
    - Attempt 2: after 1s
    - Attempt 3: after 2s

    No wait follows the final attempt.

    Raises:
        FetchError: every attempt failed.
    """
    last_error: BaseException | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug(f"{description} (attempt {attempt}/{max_attempts})")
            return await operation()
        except retry_on as e:
            last_error = e
            logger.warning(f"{description} attempt {attempt} failed: {e}")

            if attempt < max_attempts:
                delay = backoff_delay(attempt, initial_delay, multiplier)
                logger.debug(f"Waiting {delay:.3f}s before retry...")
                await sleep(delay)

    logger.error(f"{description} failed after {max_attempts} attempts: {last_error}")
    raise FetchError(attempts=max_attempts) from last_error
