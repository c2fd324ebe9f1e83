"""Retry wrapper for AI provider calls.

Only retryable kinds (rate limiting, upstream unavailability) are retried,
with exponential backoff: 1s, 2s, ... Everything else propagates at once.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from atmosphera.infrastructure.llm.errors import AIServiceError, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, AIServiceError) and exc.retryable


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "AI call failed (attempt %d): %s; retrying in %.1fs",
        state.attempt_number,
        exc,
        state.next_action.sleep if state.next_action else 0.0,
    )


async def with_retry(
    func: Callable[[], Awaitable[T]],
    *,
    retries: int = 2,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run *func*, retrying retryable failures up to *retries* times.

    Raw exceptions are classified first, so callers always see an
    :class:`AIServiceError`.
    """

    async def attempt() -> T:
        try:
            return await func()
        except AIServiceError:
            raise
        except Exception as exc:
            raise classify_error(exc) from exc

    retrying = AsyncRetrying(
        stop=stop_after_attempt(retries + 1),
        wait=wait_exponential(multiplier=base_delay, min=base_delay),
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(attempt)
