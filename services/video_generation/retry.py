"""
Bounded retry combinator for polling.

Runs an async operation up to max_attempts times with a fixed delay between
attempts. An attempt is repeated when it raises a retryable error or when
its result is not yet done. Both kinds of attempt consume the same budget.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from .errors import VideoGenerationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AttemptsExhausted(Exception):
    """Every attempt completed without a done result."""

    def __init__(self, attempts: int, last_result):
        self.attempts = attempts
        self.last_result = last_result
        super().__init__(f"Not done after {attempts} attempts")


def is_transient(error: BaseException) -> bool:
    """Errors worth another attempt: rate limits, timeouts, provider hiccups."""
    return isinstance(error, VideoGenerationError) and error.retryable


def _log_retry(retry_state: RetryCallState):
    outcome = retry_state.outcome
    if outcome is not None and outcome.failed:
        error = outcome.exception()
        logger.warning(
            f"Polling attempt {retry_state.attempt_number} failed, retrying: "
            f"{type(error).__name__}: {error}"
        )


async def retry_until_done(
    operation: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    max_attempts: int,
    interval: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    should_retry_error: Callable[[BaseException], bool] = is_transient,
) -> T:
    """
    Call operation until is_done(result), at most max_attempts times.

    Raises:
        AttemptsExhausted: The last attempt returned a result that was not done
        Exception: The last attempt's error, or any non-retryable error at once
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=(
            retry_if_exception(should_retry_error)
            | retry_if_result(lambda result: not is_done(result))
        ),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )

    try:
        return await retrying(operation)
    except RetryError as e:
        last_attempt = e.last_attempt
        raise AttemptsExhausted(last_attempt.attempt_number, last_attempt.result()) from None
