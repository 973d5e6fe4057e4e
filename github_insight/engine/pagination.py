"""
Cursor-based pagination over a single upstream collection.

``PaginatedFetcher.fetch_all`` repeats single-page calls for one source,
advancing the cursor until the upstream reports no more pages. Each page
call is wrapped by a ``RetryExecutor``; pages are strictly sequential because
page N+1's request depends on page N's cursor.

Atomicity:
    ``fetch_all`` either returns every item of every page, in upstream
    order, or raises. Items gathered before a failure are discarded.

Cursor Guard:
    A page whose ``next_cursor`` equals the cursor it was requested with, or
    any cursor already consumed for the source, would loop forever. It is
    rejected with ``PaginationError``, which the classifier treats as
    non-retryable.

Query Shapes:
    Some sources can only be queried once their owner type is known (a
    project number under ``user(login:)`` or under
    ``organization(login:)``). ``fetch_all`` accepts an ordered pair of
    ``QueryShape`` values: the first page tries the first shape and, if it
    fails after its retries, the second shape once. The shape that worked is
    kept for every later page of the same call. Nothing is cached across
    calls.
"""

from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import TypeVar

import structlog

from github_insight.exceptions import PaginationError
from github_insight.models.domain import Cursor, FetchRequest, PageResult
from github_insight.utils.retry import RetryExecutor

log = structlog.get_logger(__name__)

T = TypeVar("T")


class QueryShape(str, Enum):
    """Query shape used for a page call."""

    DEFAULT = "default"
    """The source has a single unambiguous shape."""

    USER = "user"
    """Owner queried through the ``user(login:)`` root field."""

    ORGANIZATION = "organization"
    """Owner queried through the ``organization(login:)`` root field."""


PageFetch = Callable[[FetchRequest, QueryShape], Awaitable[PageResult[T]]]
"""Single-page call: fetch the page addressed by the request in the given shape."""


class PaginatedFetcher:
    """Fetch every page of one source, one page at a time."""

    def __init__(self, retry: RetryExecutor | None = None) -> None:
        """Initialize the fetcher.

        Args:
            retry: Retry executor wrapped around every page call.
        """
        self.retry = retry or RetryExecutor()

    async def fetch_all(
        self,
        first_request: FetchRequest,
        fetch_page: PageFetch[T],
        shapes: Sequence[QueryShape] = (QueryShape.DEFAULT,),
        name: str = "fetch_page",
        max_items: int | None = None,
    ) -> list[T]:
        """Fetch all pages starting at ``first_request``.

        Args:
            first_request: Request for the first page (its cursor is usually
                ``None``).
            fetch_page: Single-page call.
            shapes: Shapes to try for the first page, in order. Later pages
                reuse the shape that succeeded.
            name: Operation name for log events.
            max_items: Stop once this many items were collected; the result
                is truncated to it.

        Returns:
            Items of every page in upstream order.

        Raises:
            PaginationError: If the upstream repeats a consumed cursor.
            Exception: The error of the failing page call (for the first
                page, the error of the last shape tried).
        """
        if not shapes:
            raise ValueError("At least one query shape is required")

        source = first_request.source
        request = first_request
        consumed: set[Cursor] = set()
        if request.cursor is not None:
            consumed.add(request.cursor)

        shape: QueryShape | None = shapes[0] if len(shapes) == 1 else None
        items: list[T] = []
        pages = 0

        while True:
            if shape is None:
                page, shape = await self._fetch_first_shape(request, fetch_page, shapes, name)
            else:
                page = await self._fetch_page(request, fetch_page, shape, name)

            pages += 1
            items.extend(page.items)
            log.debug(
                "page_fetched",
                source=str(source),
                page=pages,
                page_items=len(page.items),
                has_more=page.has_more,
            )

            if max_items is not None and len(items) >= max_items:
                log.info("pagination_limit_reached", source=str(source), pages=pages, max_items=max_items)
                return items[:max_items]

            if not page.has_more:
                log.info("pagination_complete", source=str(source), pages=pages, items=len(items))
                return items

            next_cursor = page.next_cursor
            if next_cursor is None:
                raise PaginationError(f"Page {pages} of {source} reports more results without a cursor")
            if next_cursor == request.cursor:
                raise PaginationError(f"Cursor {next_cursor} returned twice in a row for {source}")
            if next_cursor in consumed:
                raise PaginationError(f"Cursor {next_cursor} was already consumed for {source}")

            consumed.add(next_cursor)
            request = request.with_cursor(next_cursor)

    async def _fetch_page(
        self,
        request: FetchRequest,
        fetch_page: PageFetch[T],
        shape: QueryShape,
        name: str,
    ) -> PageResult[T]:
        return await self.retry.execute(lambda: fetch_page(request, shape), name=name)

    async def _fetch_first_shape(
        self,
        request: FetchRequest,
        fetch_page: PageFetch[T],
        shapes: Sequence[QueryShape],
        name: str,
    ) -> tuple[PageResult[T], QueryShape]:
        """Try each shape once, in order, and report which one worked."""
        last = len(shapes) - 1
        for index, shape in enumerate(shapes):
            try:
                page = await self._fetch_page(request, fetch_page, shape, f"{name}[{shape.value}]")
            except Exception as e:
                if index == last:
                    raise
                log.info(
                    "query_shape_fallback",
                    source=str(request.source),
                    failed_shape=shape.value,
                    next_shape=shapes[index + 1].value,
                    error=str(e),
                )
                continue
            return page, shape

        raise RuntimeError("No query shape attempted")
