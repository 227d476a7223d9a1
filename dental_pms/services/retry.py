"""Caller-side retry with exponential backoff.

The transport is single-shot.  Callers that know an operation is
safe to repeat (reads) wrap it here, using the tenant's ``max_retries``.
Mutations (bookings, cancellations) must not go through this helper.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from dental_pms.errors import (
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

INITIAL_BACKOFF_SECONDS = 0.25
MAX_BACKOFF_SECONDS = 4.0


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, NotFoundError):
        return False
    if isinstance(exc, ServerError):
        # 4xx other than 429 will fail the same way again
        return exc.status_code is None or exc.status_code >= 500
    return isinstance(exc, (RateLimitError, NetworkError, RequestTimeoutError))


def backoff_delay(attempt: int) -> float:
    """Delay before retry number *attempt* (1-based)."""
    return min(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)), MAX_BACKOFF_SECONDS)


async def with_backoff(
    call: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    label: str = "pms call",
) -> T:
    """Await ``call()``, retrying retryable errors up to *max_retries* times."""
    attempt = 0
    while True:
        try:
            return await call()
        except Exception as exc:
            if attempt >= max_retries or not is_retryable(exc):
                raise
            attempt += 1
            delay = backoff_delay(attempt)
            logger.warning(
                "%s failed (%s), retry %d/%d in %.2fs",
                label, type(exc).__name__, attempt, max_retries, delay,
            )
            await asyncio.sleep(delay)
