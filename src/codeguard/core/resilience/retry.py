"""Retry with exponential backoff.

Provides:
- RetryResult: Outcome of a retried unit of work (never raised)
- calculate_backoff_delay: Delay before the next attempt
- is_retryable_error: Default retryability classifier
- run_with_retry: Run a coroutine function until success or budget exhausted
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

import aiohttp
import structlog

from codeguard.core.errors import AnalysisError

logger = structlog.get_logger()

T = TypeVar("T")

_TRANSIENT_KEYWORDS = ("network", "timeout", "timed out", "econnrefused", "enotfound", "etimedout", "dns")
_RATE_LIMIT_KEYWORDS = ("rate limit", "429")
_SERVER_ERROR_KEYWORDS = ("500", "502", "503", "504")
_AUTH_KEYWORDS = ("401", "403", "unauthorized", "forbidden")
_VALIDATION_KEYWORDS = ("400", "validation")


@dataclass
class RetryResult(Generic[T]):
    """Outcome of ``run_with_retry``.

    Attributes:
        success: Whether some attempt succeeded
        value: Return value of the successful attempt
        error: Last error when every attempt failed
        attempts: Number of attempts consumed
    """

    success: bool
    attempts: int
    value: T | None = None
    error: Exception | None = None


def calculate_backoff_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    multiplier: float,
) -> float:
    """Delay in seconds to wait after ``attempt`` failed.

    delay = min(initial_delay * multiplier ** (attempt - 1), max_delay)

    Example:
        >>> [calculate_backoff_delay(n, 1.0, 30.0, 2.0) for n in (1, 2, 3, 6)]
        [1.0, 2.0, 4.0, 30.0]
    """
    delay = initial_delay * multiplier ** (attempt - 1)
    return min(delay, max_delay)


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether a failed attempt should be retried.

    Tagged AnalysisErrors are classified by kind: only TRANSIENT retries,
    so an open circuit, a cancellation, auth/validation failures and
    configuration problems stop immediately. Untagged exceptions fall back
    to type checks and then to message keywords.
    """
    if isinstance(error, AnalysisError):
        return error.retryable

    if isinstance(error, asyncio.CancelledError):
        return False

    if isinstance(error, (asyncio.TimeoutError, aiohttp.ClientConnectionError, ConnectionError)):
        return True

    message = str(error).lower()

    if "cancel" in message:
        return False

    if any(keyword in message for keyword in _TRANSIENT_KEYWORDS):
        return True

    if any(keyword in message for keyword in _RATE_LIMIT_KEYWORDS):
        return True

    if any(keyword in message for keyword in _SERVER_ERROR_KEYWORDS):
        return True

    if any(keyword in message for keyword in _AUTH_KEYWORDS):
        return False

    if any(keyword in message for keyword in _VALIDATION_KEYWORDS):
        return False

    return False


async def run_with_retry(
    work: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_multiplier: float = 2.0,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
) -> RetryResult[T]:
    """Run ``work`` sequentially until it succeeds or retrying stops.

    After each failure, waits ``calculate_backoff_delay(attempt, ...)``
    seconds and tries again if attempts remain and the error is retryable.
    Exhaustion and non-retryable failures are reported in the result, not
    raised. ``asyncio.CancelledError`` is not intercepted.

    Args:
        work: Zero-argument coroutine function (one attempt)
        max_attempts: Total attempts including the first
        initial_delay: Delay after the first failure, in seconds
        max_delay: Upper bound for any delay, in seconds
        backoff_multiplier: Growth factor between consecutive delays
        is_retryable: Classifier for failed attempts

    Returns:
        RetryResult with the value or the last error and the attempts used

    Example:
        >>> result = await run_with_retry(lambda: backend.analyze(request))
        >>> if not result.success:
        ...     print(f"Gave up after {result.attempts} attempts: {result.error}")
    """
    last_error: Exception | None = None
    attempts = 0

    for attempt in range(1, max_attempts + 1):
        attempts = attempt
        try:
            value = await work()
            return RetryResult(success=True, attempts=attempts, value=value)
        except Exception as e:
            last_error = e

            if attempt < max_attempts and is_retryable(e):
                delay = calculate_backoff_delay(
                    attempt, initial_delay, max_delay, backoff_multiplier
                )
                logger.warning(
                    "retry_scheduled",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                    backoff_seconds=delay,
                )
                await asyncio.sleep(delay)
                continue

            break

    logger.debug("retry_gave_up", attempts=attempts, error=str(last_error))
    return RetryResult(success=False, attempts=attempts, error=last_error)
