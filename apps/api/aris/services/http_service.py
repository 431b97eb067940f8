"""HTTP helpers with retry/backoff for provider and ERP integrations."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


def _backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay = delay + random.uniform(0, delay / 2)
    return delay


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
    label: str = "HTTP request",
) -> httpx.Response:
    """
    Execute an HTTP request with exponential backoff retries.

    Transport errors are retried and re-raised on the last attempt. Responses
    with a retryable status are retried and the final response is returned
    as-is, so callers still inspect the status code.
    """
    statuses = retry_statuses if retry_statuses is not None else DEFAULT_RETRY_STATUSES

    for attempt in range(max_attempts):
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if attempt >= max_attempts - 1:
                raise
            delay = _backoff_delay(attempt, base_delay, max_delay)
            logger.warning("%s failed, retrying", label, exc_info=exc)
            if delay:
                await asyncio.sleep(delay)
            continue

        if response.status_code in statuses and attempt < max_attempts - 1:
            delay = _backoff_delay(attempt, base_delay, max_delay)
            logger.warning("%s returned %s, retrying", label, response.status_code)
            if delay:
                await asyncio.sleep(delay)
            continue

        return response

    return response
