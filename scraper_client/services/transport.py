from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from scraper_client.core.errors import TransportError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 5
    backoff_step_seconds: float = 4.0

    def delay_before(self, attempt: int) -> float:
        # attempt 0 is the initial request and never waits
        return attempt * self.backoff_step_seconds


DEFAULT_RETRY_POLICY = RetryPolicy()


async def send_with_retry(
    client: httpx.AsyncClient,
    request: httpx.Request,
    *,
    server_location: str = "",
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    sleep: Sleep = asyncio.sleep,
) -> httpx.Response:
    """Send ``request``, retrying network failures with a linear backoff.

    HTTP error statuses are returned as-is; only ``httpx.TransportError``
    (connection failures, timeouts, protocol errors) triggers a retry.
    """

    last_error: httpx.TransportError | None = None
    for attempt in range(policy.max_attempts):
        if attempt > 0:
            delay = policy.delay_before(attempt)
            logger.warning(
                "request %s %s failed (%s), retrying in %.0fs",
                request.method,
                request.url,
                last_error,
                delay,
            )
            await sleep(delay)
        try:
            return await client.send(request)
        except httpx.TransportError as exc:
            last_error = exc

    raise TransportError(
        server_location or f"{request.url.scheme}://{request.url.netloc.decode('ascii')}",
        str(request.url),
        policy.max_attempts,
        last_error,
    ) from last_error
