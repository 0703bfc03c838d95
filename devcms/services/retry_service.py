"""Retry policy for calls to the Realpad web service."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from devcms.exceptions import SyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, SyncError) and exc.retryable


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome is not None else None
    logger.warning(
        "Retrying after attempt %d failed: %s",
        state.attempt_number,
        exc,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter for retryable sync errors."""

    attempts: int = 3
    initial: float = 1.0
    maximum: float = 30.0

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential_jitter(initial=self.initial, max=self.maximum),
            retry=retry_if_exception(_is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func()`` until it succeeds, fails permanently, or attempts run out."""
        async for attempt in self.retrying():
            with attempt:
                return await func()
        raise AssertionError("unreachable")  # pragma: no cover


NO_RETRY = RetryPolicy(attempts=1)
