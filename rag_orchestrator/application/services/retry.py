"""Bounded async retry with linear, capped backoff (tenacity)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def _log_before_sleep(label: str) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "%s failed (attempt %d), retrying in %.2fs: %s",
            label,
            state.attempt_number,
            delay,
            exc,
            extra={"operation": label, "attempt": state.attempt_number},
        )

    return _log


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay_s: float = 0.5,
    max_delay_s: float = 5.0,
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    give_up_on: tuple[type[BaseException], ...] = (),
    label: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Await ``fn()`` up to ``attempts`` times.

    Waits ``min(base × n, max)`` after the n-th failure. Exceptions outside
    ``retry_on`` (or inside ``give_up_on``) propagate at once; after the last
    attempt the final exception is re-raised unchanged.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_incrementing(start=base_delay_s, increment=base_delay_s, max=max_delay_s),
        retry=retry_if_exception_type(retry_on) & retry_if_not_exception_type(give_up_on),
        before_sleep=_log_before_sleep(label),
        sleep=sleep,
        reraise=True,
    )
    return await retrying(fn)
