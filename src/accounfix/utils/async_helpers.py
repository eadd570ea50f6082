"""AccounFix exception hierarchy plus retry and timeout helpers for outbound calls.

The AI gateway wraps every Anthropic request with create_retry and
with_timeout; the workbench and shell catch the exceptions defined here.
"""

from __future__ import annotations

import asyncio
import builtins
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

log = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


class AccountFixError(Exception):
    """Base exception for all AccounFix errors."""


class AIServiceError(AccountFixError):
    """The AI service call failed or returned an unusable response."""


class RateLimitError(AIServiceError):
    """Rate limit exceeded.

    Attributes:
        retry_after: Number of seconds to wait before retrying, if known.
    """

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class TimeoutError(AIServiceError):
    """Operation timed out."""


class SecurityError(AccountFixError):
    """Text could not be made safe to send or log."""


class IntegrationError(AccountFixError):
    """Pushing a record to the external ERP failed."""


def _log_retry(retry_state: RetryCallState) -> None:
    if retry_state.outcome is None:
        return

    exception = retry_state.outcome.exception()
    if exception:
        log.warning(
            "retrying_operation",
            attempt=retry_state.attempt_number,
            exception_type=type(exception).__name__,
            exception_message=str(exception),
            wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
        )


def create_retry(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 30.0,
    retry_on: tuple[type[BaseException], ...] = (httpx.TimeoutException, httpx.NetworkError),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Build a tenacity decorator with exponential backoff.

    Only the exception types in retry_on are retried; anything else, and
    the last failure once max_attempts is reached, propagates unchanged.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )


async def with_timeout(
    coro: Awaitable[T],
    timeout: float,
    error_message: str | None = None,
) -> T:
    """Await coro for at most timeout seconds.

    Raises:
        TimeoutError: The AccounFix TimeoutError (an AIServiceError), not the builtin.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except builtins.TimeoutError as e:
        msg = error_message or f"Operation timed out after {timeout}s"
        log.warning("operation_timeout", timeout=timeout)
        raise TimeoutError(msg) from e
