"""Bounded retries with exponential backoff.

Wraps any zero-argument async operation. The operation decides what counts
as failure by raising; the policy never turns an exhausted retry into a
placeholder value.

Delays between attempt ``i`` and ``i + 1`` (0-indexed) are
``base_delay * 2 ** i``; there is no sleep after the final attempt.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including initial).
        base_delay: Delay in seconds before the first retry; doubles after.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.debug(
        "retry_attempt_failed",
        attempt=retry_state.attempt_number,
        delay=delay,
        error=str(exc) if exc else None,
    )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or attempts are exhausted.

    Args:
        operation: Zero-argument coroutine function; failure means raising.
        max_attempts: Maximum number of calls.
        base_delay: Seconds before the first retry; doubles each retry.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The first successful result.

    Raises:
        Exception: The last failure once attempts are exhausted.
        asyncio.CancelledError: If cancelled, including during a backoff sleep.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(max_attempts, 1)),
        wait=wait_exponential(multiplier=base_delay, exp_base=2),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            return await operation()

    # This should not be reached due to reraise=True
    raise RuntimeError("Retry loop exited unexpectedly")


async def retry_with_config(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` under a RetryConfig."""
    return await retry_with_backoff(
        operation, config.max_attempts, config.base_delay, sleep=sleep
    )
