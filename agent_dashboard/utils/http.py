"""HTTP utilities providing retry/backoff semantics."""

from __future__ import annotations

import asyncio
import logging

import httpx

from agent_dashboard.core.errors import UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def is_upstream_failure(status_code: int) -> bool:
    """True for responses that say nothing about the caller's credentials."""
    return status_code == 429 or status_code >= 500


class RetryConfig:
    """Bounded exponential backoff: ``min(base * 2**(n-1), max)`` between attempts."""

    def __init__(
        self,
        *,
        attempts: int = 3,
        base_delay_seconds: float = 0.5,
        max_delay_seconds: float = 8.0,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """
    Send a request, retrying transport failures and 429/5xx responses.

    Non-retryable responses (including 4xx) are returned for the caller to
    interpret. Raises ``UpstreamTimeout`` or ``UpstreamUnavailable`` once the
    attempts are exhausted without a response.
    """
    config = retry_config or RetryConfig()
    last_exception: httpx.TransportError | None = None
    response: httpx.Response | None = None

    for attempt in range(1, config.attempts + 1):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            last_exception = exc
            response = None
            logger.warning(
                "%s %s failed on attempt %d/%d: %s",
                method,
                _redact(url),
                attempt,
                config.attempts,
                exc.__class__.__name__,
            )
        else:
            if response.status_code not in RETRYABLE_STATUS_CODES:
                return response
            last_exception = None
            logger.warning(
                "%s %s returned %d on attempt %d/%d",
                method,
                _redact(url),
                response.status_code,
                attempt,
                config.attempts,
            )

        if attempt < config.attempts:
            await asyncio.sleep(config.delay_for(attempt))

    if response is not None:
        return response
    host = httpx.URL(url).host
    if isinstance(last_exception, httpx.TimeoutException):
        raise UpstreamTimeout(f"Timed out contacting {host}.") from last_exception
    raise UpstreamUnavailable(f"Could not reach {host}.") from last_exception


def _redact(url: str) -> str:
    """Strip bot tokens embedded in Telegram-style URL paths."""
    parsed = httpx.URL(url)
    segments = [
        "bot***" if segment.startswith("bot") and ":" in segment else segment
        for segment in parsed.path.split("/")
    ]
    return f"{parsed.scheme}://{parsed.host}{'/'.join(segments)}"


__all__ = [
    "RETRYABLE_STATUS_CODES",
    "RetryConfig",
    "is_upstream_failure",
    "request_with_retry",
]
