"""Classification-driven retries with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, wait_exponential

from spscjobs.resilience.classifier import FailureContext, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retry_predicate(context: FailureContext | None) -> Callable[[RetryCallState], bool]:
    def _should_retry(state: RetryCallState) -> bool:
        assert state.outcome is not None
        exc = state.outcome.exception()
        if exc is None or not isinstance(exc, Exception):
            # cancellation and interpreter exits are never retried
            return False
        verdict = classify_error(exc, context)
        # attempt_number counts the first call, so retries spent = attempt_number - 1
        return verdict.should_retry and state.attempt_number <= verdict.max_retries

    return _should_retry


def _log_retry(context: FailureContext | None) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        assert state.outcome is not None and state.next_action is not None
        exc = state.outcome.exception()
        verdict = classify_error(exc, context)
        logger.warning(
            "Retry %d/%d after %.0fs (%s): %s",
            state.attempt_number,
            verdict.max_retries,
            state.next_action.sleep,
            verdict.type.value,
            exc,
        )

    return _before_sleep


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    context: FailureContext | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await *operation()* until it succeeds or the classifier gives up.

    Waits 2s, 4s, 8s, ... between attempts. The final error is re-raised
    as-is, never wrapped.
    """
    retrying = AsyncRetrying(
        retry=_retry_predicate(context),
        wait=wait_exponential(multiplier=2, exp_base=2),
        before_sleep=_log_retry(context),
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
    raise AssertionError("unreachable")  # pragma: no cover
