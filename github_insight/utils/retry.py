"""Retry utilities for handling classified fetch failures.

Provides an executor and a decorator for retrying async operations with
exponential backoff. Unlike a plain exception filter, every failure is run
through ``github_insight.engine.classifier.classify`` and the outcome picks
the behaviour:

    - NonRetryable: re-raise immediately (one call only)
    - RateLimited: sleep ``rate_limit_base * 2**attempt`` and retry
    - Retryable: sleep ``retry_base * 2**attempt`` and retry

Key Exports:
    RetryPolicy: Attempt ceiling and backoff bases.
    RetryExecutor: Drives one operation under a policy.
    async_retry: Decorator form of RetryExecutor.

Example:
    >>> executor = RetryExecutor(RetryPolicy(max_attempts=5))
    >>> data = await executor.execute(
    ...     lambda: client.execute(query, variables),
    ...     name="fetch_repository",
    ... )

Thread Safety:
    The executor holds no per-call state; one instance may drive any number
    of concurrent operations. Backoff sleeps use ``asyncio.sleep`` so they
    suspend only the calling task and are aborted by cancellation.

Backoff Formula:
    delay = min(base * 2 ** attempt, max_delay), attempt counted from 0
    With the defaults: rate limits wait 1s, 2s, 4s, ...; transient errors
    wait 0.5s, 1s, 2s, ...
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from github_insight.engine.classifier import NonRetryable, RateLimited, RetryOutcome, classify

log = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 15
DEFAULT_RATE_LIMIT_BASE = 1.0
DEFAULT_RETRY_BASE = 0.5
DEFAULT_MAX_DELAY = 60.0


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling and backoff bases for one retry executor.

    Attributes:
        max_attempts: Maximum number of calls, including the first one.
        rate_limit_base: Base delay in seconds for rate-limited failures.
            Provider rate windows are minutes-scale, so this should be at
            least ``retry_base``.
        retry_base: Base delay in seconds for transient failures.
        max_delay: Upper bound for a single backoff sleep.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    rate_limit_base: float = DEFAULT_RATE_LIMIT_BASE
    retry_base: float = DEFAULT_RETRY_BASE
    max_delay: float = DEFAULT_MAX_DELAY

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.rate_limit_base < 0 or self.retry_base < 0:
            raise ValueError("Backoff bases must not be negative")

    def delay_for(self, outcome: RetryOutcome, attempt: int) -> float:
        """Backoff before the next call after a failure on ``attempt`` (0-based)."""
        base = self.rate_limit_base if isinstance(outcome, RateLimited) else self.retry_base
        return min(base * 2**attempt, self.max_delay)


class RetryExecutor:
    """Run an async operation, retrying according to error classification.

    The operation must be safe to re-issue (GraphQL reads are). When the
    attempts run out, or the failure is non-retryable, the last raw error is
    re-raised unchanged so callers can inspect it.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            policy: Retry policy. Defaults to ``RetryPolicy()``.
            sleep: Coroutine used for backoff. Defaults to ``asyncio.sleep``
                (looked up at call time so tests can patch it).
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str = "operation",
        max_attempts: int | None = None,
    ) -> T:
        """Call ``operation`` until it succeeds or retrying stops.

        Args:
            operation: Zero-argument callable returning a fresh awaitable on
                every call.
            name: Operation name used in log events.
            max_attempts: Per-call override of ``policy.max_attempts``.

        Returns:
            The operation's result.

        Raises:
            Exception: The last error raised by the operation.
        """
        attempts = max_attempts if max_attempts is not None else self.policy.max_attempts
        if attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {attempts}")

        for attempt in range(attempts):
            try:
                result = await operation()
            except Exception as e:
                outcome = classify(e)
                remaining = attempts - attempt - 1

                if isinstance(outcome, NonRetryable):
                    log.warning(
                        "retry_aborted",
                        operation=name,
                        attempt=attempt + 1,
                        max_attempts=attempts,
                        classification=outcome.label,
                        error=str(e),
                    )
                    raise

                if remaining == 0:
                    log.error(
                        "retry_exhausted",
                        operation=name,
                        attempt=attempt + 1,
                        max_attempts=attempts,
                        classification=outcome.label,
                        error=str(e),
                    )
                    raise

                delay = self.policy.delay_for(outcome, attempt)
                log.warning(
                    "retry_attempt",
                    operation=name,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    classification=outcome.label,
                    delay=delay,
                    error=str(e),
                )
                sleep = self._sleep or asyncio.sleep
                await sleep(delay)
                continue

            if attempt:
                log.info("retry_succeeded", operation=name, attempt=attempt + 1)
            else:
                log.debug("operation_succeeded", operation=name, attempt=1)
            return result

        # range(attempts) is never empty, every iteration returns or raises
        raise RuntimeError("Retry logic error")


def async_retry(
    policy: RetryPolicy | None = None,
    name: str | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator for async functions with classified retry logic.

    Args:
        policy: Retry policy. Defaults to ``RetryPolicy()``.
        name: Operation name for log events. Defaults to the function name.

    Returns:
        A decorator that wraps coroutine functions with ``RetryExecutor``.

    Example:
        >>> @async_retry(RetryPolicy(max_attempts=3))
        ... async def fetch_viewer():
        ...     return await client.execute("query { viewer { login } }")
    """
    executor = RetryExecutor(policy)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await executor.execute(
                lambda: func(*args, **kwargs),
                name=name or func.__name__,
            )

        return wrapper

    return decorator
