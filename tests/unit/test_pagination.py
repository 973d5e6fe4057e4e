"""Tests for github_insight.engine.pagination."""

import pytest

from github_insight.engine.pagination import PaginatedFetcher, QueryShape
from github_insight.exceptions import ApiError, PaginationError, ResourceNotFoundError
from github_insight.models.domain import Cursor, FetchRequest, PageResult, ProjectId, ProjectType


def page(items, cursor=None):
    return PageResult(items=list(items), next_cursor=Cursor(cursor) if cursor else None, has_more=cursor is not None)


class ScriptedPages:
    """Page call that returns scripted pages (or raises scripted errors) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[tuple[Cursor | None, QueryShape]] = []

    async def __call__(self, request, shape):
        self.requests.append((request.cursor, shape))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def shapes(self):
        return [shape for _, shape in self.requests]

    @property
    def cursors(self):
        return [cursor for cursor, _ in self.requests]


@pytest.fixture
def pager(retry_executor):
    return PaginatedFetcher(retry_executor)


class TestFetchAll:
    """Test cursor-following pagination for a single source."""

    @pytest.mark.asyncio
    async def test_follows_cursors_in_order(self, pager, repo_a):
        """Three pages of 2, 2 and 1 items give 5 items in 3 calls."""
        pages = ScriptedPages(page("ab", "c1"), page("cd", "c2"), page("e"))

        items = await pager.fetch_all(FetchRequest(repo_a), pages)

        assert items == ["a", "b", "c", "d", "e"]
        assert pages.cursors == [None, Cursor("c1"), Cursor("c2")]

    @pytest.mark.asyncio
    async def test_single_page(self, pager, repo_a):
        pages = ScriptedPages(page([]))

        assert await pager.fetch_all(FetchRequest(repo_a), pages) == []
        assert len(pages.requests) == 1

    @pytest.mark.asyncio
    async def test_repeated_cursor_is_rejected(self, pager, repo_a):
        """A page returning the cursor it was requested with stops after two calls."""
        pages = ScriptedPages(page("ab", "c1"), page("cd", "c1"), page("e"))

        with pytest.raises(PaginationError, match="c1"):
            await pager.fetch_all(FetchRequest(repo_a), pages)

        assert len(pages.requests) == 2

    @pytest.mark.asyncio
    async def test_cursor_cycle_is_rejected(self, pager, repo_a):
        """A cursor consumed earlier in the same call is a cycle."""
        pages = ScriptedPages(page("a", "c1"), page("b", "c2"), page("c", "c1"))

        with pytest.raises(PaginationError, match="already consumed"):
            await pager.fetch_all(FetchRequest(repo_a), pages)

        assert len(pages.requests) == 3

    @pytest.mark.asyncio
    async def test_starting_cursor_counts_as_consumed(self, pager, repo_a):
        pages = ScriptedPages(page("a", "c2"), page("b", "start"))

        with pytest.raises(PaginationError):
            await pager.fetch_all(FetchRequest(repo_a, cursor=Cursor("start")), pages)

    @pytest.mark.asyncio
    async def test_failure_discards_collected_items(self, pager, repo_a, sleep_mock):
        """A page failing after retries fails the whole source."""
        error = ApiError("Not Found", 404)
        pages = ScriptedPages(page("ab", "c1"), error)

        with pytest.raises(ApiError) as exc_info:
            await pager.fetch_all(FetchRequest(repo_a), pages)

        assert exc_info.value is error
        sleep_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_page_retried_with_same_cursor(self, pager, repo_a, sleep_mock):
        """A transient page failure is retried for the same cursor."""
        pages = ScriptedPages(page("a", "c1"), TimeoutError(), page("b"))

        assert await pager.fetch_all(FetchRequest(repo_a), pages) == ["a", "b"]
        assert pages.cursors == [None, Cursor("c1"), Cursor("c1")]
        assert sleep_mock.await_count == 1

    @pytest.mark.asyncio
    async def test_max_items_truncates(self, pager, repo_a):
        """Pagination stops as soon as max_items are collected."""
        pages = ScriptedPages(page("abc", "c1"), page("def", "c2"), page("g"))

        items = await pager.fetch_all(FetchRequest(repo_a), pages, max_items=4)

        assert items == ["a", "b", "c", "d"]
        assert len(pages.requests) == 2

    @pytest.mark.asyncio
    async def test_requires_a_shape(self, pager, repo_a):
        with pytest.raises(ValueError):
            await pager.fetch_all(FetchRequest(repo_a), ScriptedPages(), shapes=())


class TestQueryShapeFallback:
    """Test first-page shape fallback for owner-ambiguous sources."""

    @pytest.fixture
    def project(self):
        return ProjectId("octo", 7, ProjectType.USER)

    @pytest.mark.asyncio
    async def test_falls_back_and_keeps_working_shape(self, pager, project):
        """The second shape is tried once and kept for later pages."""
        pages = ScriptedPages(
            ResourceNotFoundError("No user project"),
            page("ab", "c1"),
            page("c"),
        )

        items = await pager.fetch_all(
            FetchRequest(project),
            pages,
            shapes=(QueryShape.USER, QueryShape.ORGANIZATION),
        )

        assert items == ["a", "b", "c"]
        assert pages.shapes == [QueryShape.USER, QueryShape.ORGANIZATION, QueryShape.ORGANIZATION]

    @pytest.mark.asyncio
    async def test_first_shape_success_skips_fallback(self, pager, project):
        pages = ScriptedPages(page("a", "c1"), page("b"))

        await pager.fetch_all(FetchRequest(project), pages, shapes=(QueryShape.USER, QueryShape.ORGANIZATION))

        assert pages.shapes == [QueryShape.USER, QueryShape.USER]

    @pytest.mark.asyncio
    async def test_both_shapes_fail(self, pager, project):
        """When every shape fails, the last shape's error is raised."""
        second = ResourceNotFoundError("No organization project")
        pages = ScriptedPages(ResourceNotFoundError("No user project"), second)

        with pytest.raises(ResourceNotFoundError) as exc_info:
            await pager.fetch_all(FetchRequest(project), pages, shapes=(QueryShape.USER, QueryShape.ORGANIZATION))

        assert exc_info.value is second

    @pytest.mark.asyncio
    async def test_no_fallback_after_first_page(self, pager, project):
        """Once a shape worked, later page failures do not switch shapes."""
        error = ResourceNotFoundError("Project vanished")
        pages = ScriptedPages(page("a", "c1"), error)

        with pytest.raises(ResourceNotFoundError):
            await pager.fetch_all(FetchRequest(project), pages, shapes=(QueryShape.USER, QueryShape.ORGANIZATION))

        assert pages.shapes == [QueryShape.USER, QueryShape.USER]

    @pytest.mark.asyncio
    async def test_shape_memo_is_per_call(self, pager, project):
        """A new call starts again from the first shape."""
        first = ScriptedPages(ResourceNotFoundError("No user project"), page("a"))
        second = ScriptedPages(page("b"))
        shapes = (QueryShape.USER, QueryShape.ORGANIZATION)

        await pager.fetch_all(FetchRequest(project), first, shapes=shapes)
        await pager.fetch_all(FetchRequest(project), second, shapes=shapes)

        assert second.shapes == [QueryShape.USER]


class TestPageResult:
    """Test PageResult invariants."""

    def test_more_without_cursor_is_rejected(self):
        with pytest.raises(PaginationError):
            PageResult(items=[], has_more=True)

    def test_cursor_without_more_is_rejected(self):
        with pytest.raises(PaginationError):
            PageResult(items=[], next_cursor=Cursor("c1"))

    def test_from_page_info(self):
        result = PageResult.from_page_info([1], {"hasNextPage": True, "endCursor": "abc"})
        assert result.has_more is True
        assert result.next_cursor == Cursor("abc")

        assert PageResult.from_page_info([1], None).has_more is False
        assert PageResult.from_page_info([1], {"hasNextPage": False, "endCursor": "abc"}).next_cursor is None

    def test_from_page_info_null_cursor(self):
        with pytest.raises(PaginationError):
            PageResult.from_page_info([], {"hasNextPage": True, "endCursor": None})
