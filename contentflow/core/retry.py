"""
Bounded exponential backoff for async store calls.

Mirrors the Celery task settings used for background jobs
(retry_backoff / retry_backoff_max / retry_jitter) for code that runs inside
the long-lived consumer instead of a Celery worker.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from contentflow.core.config import settings
from contentflow.core.exceptions import TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: bool = True
) -> float:
    """
    Delay before retry number ``attempt`` (1-based).

    Grows as base_delay * 2 ** (attempt - 1), capped at max_delay.
    With jitter the delay is drawn uniformly from [0, capped].
    """
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    if jitter:
        delay = random.uniform(0, delay)
    return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    description: str = "operation",
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    jitter: bool = True,
    retry_on: Tuple[Type[BaseException], ...] = (TransientIOError,),
) -> T:
    """
    Await ``operation()`` and retry it on transient failures.

    Args:
        operation: Zero-argument callable returning an awaitable
        description: Used in log messages
        attempts: Total attempts including the first (default from settings)
        base_delay: First backoff delay in seconds (default from settings)
        max_delay: Backoff cap in seconds (default from settings)
        jitter: Randomize each delay
        retry_on: Exception types that trigger a retry

    Returns:
        The operation's result

    Raises:
        TransientIOError: When every attempt failed with a retryable error
        Exception: Any non-retryable error, immediately
    """
    max_attempts = attempts or settings.RETRY_MAX_ATTEMPTS
    base = settings.RETRY_BASE_DELAY_SECONDS if base_delay is None else base_delay
    cap = settings.RETRY_MAX_DELAY_SECONDS if max_delay is None else max_delay

    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt == max_attempts:
                break
            delay = backoff_delay(attempt, base, cap, jitter)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} for {description} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    logger.error(f"Giving up on {description} after {max_attempts} attempts: {last_error}")
    if isinstance(last_error, TransientIOError):
        raise last_error
    raise TransientIOError(description, last_error)
