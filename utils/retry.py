# =============================================================================
# utils/retry.py - Exponential backoff for throttled Graph calls
# =============================================================================

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

THROTTLING_MARKERS = ("throttled", "too many requests")


@dataclass
class RetryOptions:
    """Retry budget: total attempts and the first backoff delay"""
    max_retries: int = 3
    retry_delay_ms: int = 2000


def is_throttling_error(error: BaseException) -> bool:
    """Check if an error is a rate-limit signal (HTTP 429 or a throttling message)"""
    if getattr(error, 'status_code', None) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in THROTTLING_MARKERS)


async def retry_with_backoff(operation: Callable[[], Awaitable[T]], options: RetryOptions) -> T:
    """
    Run an async operation, retrying throttled failures with exponential backoff.

    The delay before retry n (0-based) is retry_delay_ms * 2**n. Errors that are
    not throttling are raised immediately; after max_retries attempts the last
    error is raised whatever its kind.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        options: Retry budget

    Returns:
        The operation's result
    """
    logger = logging.getLogger(__name__)
    attempts = max(1, options.max_retries)

    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as e:
            is_last_attempt = attempt == attempts - 1
            if is_last_attempt or not is_throttling_error(e):
                raise

            delay_ms = options.retry_delay_ms * (2 ** attempt)
            logger.warning(f"Throttled. Waiting {delay_ms}ms before retry {attempt + 1}/{attempts}...")
            await asyncio.sleep(delay_ms / 1000)

    raise RuntimeError("Retry loop exited without a result")
