"""
Bounded fan-out of fetches across many independent sources.

This module runs one fetch per source concurrently, capped at a fixed number
of in-flight fetches, and merges the per-source outcomes into a single
``AggregatedResult``.

Architecture:
    1. AggregatedResult: Write-once-per-key accumulator holding the items of
       every source that succeeded and the error of every source that
       failed.

    2. ConcurrentMultiSourceFetcher: Creates one asyncio task per source and
       gates the actual fetch behind an ``asyncio.Semaphore``. The bound
       protects the upstream per-credential rate limit, not local CPU.

Error Handling:
    - A source failure is logged at warning level and recorded; it never
      aborts sibling sources or the batch.
    - Duplicate sources are a malformed request and are rejected with
      ``InvalidRequestError`` before anything is dispatched.
    - Cancelling ``fetch_many`` cancels every in-flight task, waits for them
      to unwind and re-raises ``CancelledError``.

Example:
    >>> fetcher = ConcurrentMultiSourceFetcher(max_concurrency=10)
    >>> result = await fetcher.fetch_many(repositories, fetch_issues_for)
    >>> result.item_count, list(result.failures)
    (42, [])
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog

from github_insight.exceptions import InvalidRequestError

log = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

DEFAULT_MAX_CONCURRENCY = 10


@dataclass
class SourceOutcome(Generic[K, T]):
    """Outcome of fetching one source.

    Attributes:
        source: The source that was fetched.
        items: Items fetched (empty when the fetch failed).
        error: Error that ended the fetch, if it failed.
        execution_time: Wall time in seconds, including time spent waiting
            for a concurrency slot.
    """

    source: K
    items: list[T] = field(default_factory=list)
    error: Exception | None = None
    execution_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class AggregatedResult(Generic[K, T]):
    """Per-source items and failures of one multi-source fetch.

    Every requested source ends up in exactly one of ``successes`` or
    ``failures``. Keys are written once; a second write for the same source
    is a programming error and raises ``ValueError``.
    """

    successes: dict[K, list[T]] = field(default_factory=dict)
    failures: dict[K, Exception] = field(default_factory=dict)

    def record_success(self, source: K, items: list[T]) -> None:
        self._ensure_unrecorded(source)
        self.successes[source] = items

    def record_failure(self, source: K, error: Exception) -> None:
        self._ensure_unrecorded(source)
        self.failures[source] = error

    def record(self, outcome: SourceOutcome[K, T]) -> None:
        """Record a source outcome in the matching map."""
        if outcome.error is not None:
            self.record_failure(outcome.source, outcome.error)
        else:
            self.record_success(outcome.source, outcome.items)

    def _ensure_unrecorded(self, source: K) -> None:
        if source in self.successes or source in self.failures:
            raise ValueError(f"Outcome for source {source} already recorded")

    @property
    def item_count(self) -> int:
        return sum(len(items) for items in self.successes.values())

    def all_items(self) -> list[T]:
        """Items of every successful source, concatenated in insertion order."""
        return [item for items in self.successes.values() for item in items]

    @property
    def succeeded(self) -> list[K]:
        return list(self.successes)

    @property
    def failed(self) -> list[K]:
        return list(self.failures)

    @property
    def is_total_failure(self) -> bool:
        """True when at least one source was requested and none succeeded."""
        return bool(self.failures) and not self.successes


SourceFetch = Callable[[K], Awaitable[list[T]]]
CompletionCallback = Callable[[SourceOutcome[K, T]], None]


class ConcurrentMultiSourceFetcher:
    """Fetch many sources concurrently with failure isolation.

    Attributes:
        max_concurrency: Maximum number of sources fetched at the same time.
        semaphore: Asyncio semaphore enforcing the bound.

    Example:
        >>> fetcher = ConcurrentMultiSourceFetcher(max_concurrency=4)
        >>> result = await fetcher.fetch_many(sources, fetch_source)
        >>> for source, error in result.failures.items():
        ...     print(source, error)
    """

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> None:
        """Initialize the fetcher with a concurrency limit.

        Args:
            max_concurrency: Maximum number of in-flight source fetches.
                Defaults to 10.
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self.semaphore = asyncio.Semaphore(max_concurrency)

    async def fetch_many(
        self,
        sources: Iterable[K],
        fetch: SourceFetch[K, T],
        on_complete: CompletionCallback[K, T] | None = None,
    ) -> AggregatedResult[K, T]:
        """Fetch every source and merge the outcomes.

        Args:
            sources: Sources to fetch. Must not contain duplicates.
            fetch: Coroutine function fetching all items of one source. It
                should apply its own retry and pagination.
            on_complete: Optional callback invoked with each source outcome as
                soon as it is recorded.

        Returns:
            AggregatedResult with one entry per source.

        Raises:
            InvalidRequestError: If ``sources`` contains duplicates.
            asyncio.CancelledError: If the call is cancelled; in-flight
                fetches are cancelled first.
            Exception: Whatever ``on_complete`` raises; in-flight fetches are
                cancelled before it propagates.
        """
        source_list = list(sources)
        self._reject_duplicates(source_list)

        result: AggregatedResult[K, T] = AggregatedResult()
        if not source_list:
            return result

        log.info(
            "multi_source_fetch_started",
            total_sources=len(source_list),
            max_concurrency=self.max_concurrency,
        )

        tasks = [asyncio.create_task(self._fetch_source(source, fetch)) for source in source_list]

        try:
            for next_done in asyncio.as_completed(tasks):
                outcome = await next_done
                result.record(outcome)
                if on_complete is not None:
                    on_complete(outcome)
        except asyncio.CancelledError:
            log.warning(
                "multi_source_fetch_cancelled",
                completed=len(result.successes) + len(result.failures),
                total_sources=len(source_list),
            )
            raise
        finally:
            # Covers cancellation and errors raised by on_complete alike.
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        log.info(
            "multi_source_fetch_complete",
            total_sources=len(source_list),
            succeeded=len(result.successes),
            failed=len(result.failures),
            items=result.item_count,
        )
        return result

    @staticmethod
    def _reject_duplicates(sources: list[K]) -> None:
        seen: set[K] = set()
        duplicates = []
        for source in sources:
            if source in seen:
                duplicates.append(source)
            seen.add(source)
        if duplicates:
            names = ", ".join(str(source) for source in duplicates)
            raise InvalidRequestError(f"Duplicate sources in request: {names}")

    async def _fetch_source(self, source: K, fetch: SourceFetch[K, T]) -> SourceOutcome[K, T]:
        """Fetch one source under the semaphore.

        Always returns an outcome for ordinary errors; only cancellation
        propagates.
        """
        start_time = time.monotonic()

        async with self.semaphore:
            log.debug("source_fetch_started", source=str(source))

            try:
                items = await fetch(source)
            except Exception as e:
                execution_time = time.monotonic() - start_time
                log.warning(
                    "source_fetch_failed",
                    source=str(source),
                    error=str(e),
                    error_type=type(e).__name__,
                    execution_time=execution_time,
                )
                return SourceOutcome(source=source, error=e, execution_time=execution_time)

            execution_time = time.monotonic() - start_time
            log.info(
                "source_fetch_completed",
                source=str(source),
                items=len(items),
                execution_time=execution_time,
            )
            return SourceOutcome(source=source, items=list(items), execution_time=execution_time)
