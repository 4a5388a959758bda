"""Exponential-backoff retry for operations that are safe to repeat."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` up to ``max_retries`` times, doubling the delay each time.

    The wait after failed attempt ``n`` is ``base_delay_ms * 2 ** (n - 1)``.
    The last error is re-raised once attempts are exhausted. Only pass
    operations the server tolerates repeating.
    """
    attempts = max(1, max_retries)
    for attempt in range(1, attempts):
        try:
            _logger.debug("Attempt %s/%s for operation", attempt, attempts)
            return await operation()
        except Exception as exc:
            wait_ms = base_delay_ms * 2 ** (attempt - 1)
            _logger.warning(
                "Operation failed (%s), retrying in %sms", exc, wait_ms
            )
            await sleep(wait_ms / 1000)
    try:
        _logger.debug("Attempt %s/%s for operation", attempts, attempts)
        return await operation()
    except Exception:
        _logger.error("Operation failed after %s attempts", attempts)
        raise
