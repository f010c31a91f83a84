"""HTTP helpers with retry/backoff for outbound integrations."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff with up to 50% jitter."""
    delay = min(max_delay, base_delay * (2**attempt))
    if delay <= 0:
        return 0.0
    return delay + random.uniform(0, delay / 2)


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: frozenset[int] | set[int] | None = None,
) -> httpx.Response:
    """
    Execute an HTTP request, retrying transport errors and retryable statuses.

    The last response is returned as-is once attempts run out; the last
    transport error is re-raised.
    """
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES
    response: httpx.Response | None = None

    for attempt in range(max_attempts):
        is_last = attempt >= max_attempts - 1
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if is_last:
                raise
            logger.warning("HTTP request failed (%s), retrying", type(exc).__name__)
        else:
            if response.status_code not in statuses or is_last:
                return response
            logger.warning("HTTP request returned %s, retrying", response.status_code)

        delay = backoff_delay(attempt, base_delay, max_delay)
        if delay:
            await asyncio.sleep(delay)

    assert response is not None
    return response
