"""
Killlog Sync Retry Logic

Exponential backoff for transient transport failures on XML API requests.

Only connection-level failures are retried here. Timeouts and API-level
errors are never retried in-request: they are reported to the caller as a
RemoteError and handled by the error classifier, which decides on backoff
for the character, the key or the whole service.

Set KILLLOG_NO_RETRY=1 to disable retries entirely.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .config import is_retry_disabled

F = TypeVar("F", bound=Callable[..., Any])

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 0.5  # seconds
DEFAULT_MAX_WAIT = 10.0  # seconds


def is_retry_enabled() -> bool:
    """Check if retry logic is enabled (KILLLOG_NO_RETRY unset)."""
    return not is_retry_disabled()


def get_retry_status() -> dict:
    """
    Get detailed status about retry behaviour.

    Returns:
        Dict with keys:
        - enabled: bool - whether retry is enabled (respects KILLLOG_NO_RETRY)
        - config: dict - current retry configuration
    """
    return {
        "enabled": is_retry_enabled(),
        "config": {
            "max_attempts": DEFAULT_MAX_ATTEMPTS,
            "min_wait": DEFAULT_MIN_WAIT,
            "max_wait": DEFAULT_MAX_WAIT,
        },
    }


def _should_retry_exception(exc: BaseException) -> bool:
    """
    Determine if an exception should trigger a retry.

    Connection, read and write failures are retried. Timeouts are not: a
    slow API is treated as a service-wide condition by the classifier.
    """
    if isinstance(exc, httpx.TimeoutException):
        return False
    return isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError))


def api_retry_async(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
) -> Callable[[F], F]:
    """
    Decorator for async API requests with retry on transport failures.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait: Initial wait between attempts in seconds
        max_wait: Maximum wait between attempts in seconds

    Usage:
        @api_retry_async()
        async def _send(self, path, params):
            ...
    """

    def decorator(func: F) -> F:
        if not is_retry_enabled():
            return func

        return retry(  # type: ignore[return-value]
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait)
            + wait_random(0, max_wait * 0.1),
            retry=retry_if_exception(_should_retry_exception),
            reraise=True,
        )(func)

    return decorator
