"""Bounded retry with exponential backoff for provider HTTP calls."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import urlparse

import httpx
import structlog

from sharp_odds.config import Settings

log = structlog.get_logger()

# 429 is deliberately absent: rate limits end pagination instead of retrying
RETRYABLE_STATUSES = frozenset({500, 502, 503, 504})


class TransientFetchError(Exception):
    """Raised once every retry of a transient failure has been used up."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)


def safe_url(url: str | httpx.URL) -> str:
    """Strip query params (they may carry credentials) for logging."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


async def send_with_backoff(
    send: Callable[[], Awaitable[httpx.Response]],
    policy: RetryPolicy,
    *,
    label: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> httpx.Response:
    """Call ``send`` until it yields a non-retryable response.

    Retries 5xx responses, timeouts and transport errors up to
    ``policy.max_retries`` times. Any other response (2xx, 4xx, 429) is
    returned to the caller untouched.
    """
    attempts = policy.max_retries + 1
    for attempt in range(attempts):
        try:
            resp = await send()
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            log.warning(
                "fetch_network_error",
                target=label,
                attempt=attempt + 1,
                attempts=attempts,
                error=repr(exc),
            )
            if attempt + 1 >= attempts:
                raise TransientFetchError(
                    f"{label}: network error after {attempts} attempts: {exc!r}"
                ) from exc
        else:
            if resp.status_code not in RETRYABLE_STATUSES:
                return resp
            log.warning(
                "fetch_server_error",
                target=label,
                status=resp.status_code,
                attempt=attempt + 1,
                attempts=attempts,
            )
            if attempt + 1 >= attempts:
                raise TransientFetchError(
                    f"{label}: HTTP {resp.status_code} after {attempts} attempts",
                    status_code=resp.status_code,
                )
        await sleep(policy.delay_for(attempt))

    # range() above always returns or raises
    raise AssertionError("unreachable")
