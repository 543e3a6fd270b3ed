"""
Write Retry Policy

Graph writes can collide with concurrent transactions on the same rows.
Those conflicts are retried with bounded exponential backoff plus jitter;
everything else fails on the first attempt.

The sleep coroutine is injectable so tests never wait in real time.
Cancelling the awaiting task stops the loop, including mid-backoff.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from hybrid_rag.errors import TransientStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class WritePolicy:
    """
    Retry settings for contended writes.

    Args:
        attempts: Total attempts, including the first
        initial_wait: First backoff delay in seconds
        max_wait: Cap for the exponential part of a delay (jitter of up to
            initial_wait is added on top)
        sleep: Coroutine used between attempts
    """

    def __init__(
        self,
        attempts: int = 5,
        initial_wait: float = 0.01,
        max_wait: float = 0.5,
        sleep: Sleep | None = None,
    ) -> None:
        if attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {attempts}")
        self.attempts = attempts
        self.initial_wait = initial_wait
        self.max_wait = max_wait
        self.sleep = sleep or asyncio.sleep

    def retrying(self) -> AsyncRetrying:
        """A fresh tenacity controller for one write."""
        return AsyncRetrying(
            sleep=self.sleep,
            stop=stop_after_attempt(self.attempts),
            wait=(
                wait_exponential(multiplier=self.initial_wait, max=self.max_wait)
                + wait_random(0, self.initial_wait)
            ),
            retry=retry_if_exception_type(TransientStorageError),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Await fn(*args), retrying on TransientStorageError."""
        return await self.retrying()(fn, *args)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.debug(
        f"Write contention (attempt {retry_state.attempt_number}), "
        f"retrying in {delay:.3f}s: {exc}"
    )
