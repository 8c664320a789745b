"""Bounded retry with multiplicative backoff.

RetryExecutor wraps a caller-supplied idempotent async operation. Every
store write and job-row creation goes through one of these, so operations
passed in must be safe to re-invoke (upserts and conditional updates,
never blind inserts).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from transcription_pipeline.utils.errors import (
    AuthenticationError,
    PersistenceError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Terminal for the request regardless of the configured retryable set
NON_RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    ValidationError,
    AuthenticationError,
)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 0.5
DEFAULT_BACKOFF_FACTOR = 1.5


class RetryExecutor:
    """Run an async operation up to ``max_attempts`` times.

    After each failed attempt except the last, waits the current delay and
    then multiplies it by ``backoff_factor``. When all attempts fail the
    last error is re-raised with ``_retry_count`` attached.

    Args:
        max_attempts: Total number of invocations, including the first.
        initial_delay: Seconds to wait after the first failure.
        backoff_factor: Multiplier applied to the delay after each wait.
        retryable_exceptions: Exception types eligible for retry. If None,
            every exception is retried except the non-retryable ones.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        retryable_exceptions: tuple[type[Exception], ...] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if initial_delay < 0:
            raise ValueError("initial_delay must not be negative")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.retryable_exceptions = retryable_exceptions

    @classmethod
    def persistence(cls, **kwargs: Any) -> RetryExecutor:
        """Policy for store writes: retry PersistenceError and transient upstream errors."""
        kwargs.setdefault("retryable_exceptions", (PersistenceError, UpstreamError))
        return cls(**kwargs)

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, NON_RETRYABLE_EXCEPTIONS):
            return False
        if isinstance(exc, UpstreamError) and not exc.transient:
            return False
        if self.retryable_exceptions is None:
            return isinstance(exc, Exception)
        return isinstance(exc, self.retryable_exceptions)

    def delays(self) -> list[float]:
        """Return the waits that separate the attempts, in order."""
        waits: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            waits.append(delay)
            delay *= self.backoff_factor
        return waits

    async def run(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        name = getattr(operation, "__name__", repr(operation))
        delay = self.initial_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation(*args, **kwargs)
            except Exception as exc:
                if not self.is_retryable(exc):
                    exc._retry_count = attempt - 1  # type: ignore[attr-defined]
                    raise
                if attempt == self.max_attempts:
                    exc._retry_count = attempt - 1  # type: ignore[attr-defined]
                    raise
                logger.warning(
                    "Attempt %d/%d for %s failed, retrying in %.2fs: %s",
                    attempt,
                    self.max_attempts,
                    name,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
                delay *= self.backoff_factor
        raise AssertionError("unreachable")  # pragma: no cover


def retry_with_backoff(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
) -> Callable:
    """Decorator form of RetryExecutor for async functions.

    Args:
        max_attempts: Total number of invocations (default 3).
        initial_delay: Delay in seconds after the first failure (default 0.5).
        backoff_factor: Delay multiplier per retry (default 1.5).
        retryable_exceptions: Exception types eligible for retry.

    Returns:
        Decorator that wraps an async function with retry logic.
    """
    executor = RetryExecutor(
        max_attempts=max_attempts,
        initial_delay=initial_delay,
        backoff_factor=backoff_factor,
        retryable_exceptions=retryable_exceptions,
    )

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await executor.run(func, *args, **kwargs)

        return wrapper

    return decorator
