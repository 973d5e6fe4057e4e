"""
Multi-source fetch service.

``MultiResourceFetcher`` is the inbound surface of the engine. Each public
method takes validated source identities, fans out one fetch per source
through ``ConcurrentMultiSourceFetcher`` and returns an ``AggregatedResult``
holding the items of every source that succeeded and the error of every
source that failed.

Per source:
    - Number-addressed requests (issues, pull requests) are split into
      chunks of ``number_chunk_size`` aliased lookups; chunks run one after
      the other under the retry executor. Numbers that do not resolve are
      logged and skipped.
    - Pull request files are read one pull request at a time, each through
      ``PaginatedFetcher``; a pull request that fails is logged and skipped.
    - Cursor-addressed requests (project items, search) run through
      ``PaginatedFetcher``. Project queries try the owner type the
      ``ProjectId`` names first and fall back to the other one.

Example:
    >>> async with GitHubGraphQLClient(token=token) as client:
    ...     fetcher = MultiResourceFetcher(client)
    ...     result = await fetcher.fetch_issues({RepositoryId("a", "b"): [1, 2]})
    >>> result.successes[RepositoryId("a", "b")][0].title
    'First issue'
"""

from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

import structlog

from github_insight.config.settings import FetchSettings
from github_insight.engine.cross_reference import CrossReferenceResolver
from github_insight.engine.pagination import PaginatedFetcher, QueryShape
from github_insight.engine.parallel_executor import (
    DEFAULT_MAX_CONCURRENCY,
    AggregatedResult,
    CompletionCallback,
    ConcurrentMultiSourceFetcher,
)
from github_insight.exceptions import InvalidRequestError, ResourceNotFoundError, ResponseDecodeError
from github_insight.graphql import queries
from github_insight.graphql.parsers import (
    parse_aliased_nodes,
    parse_issue,
    parse_project,
    parse_project_item,
    parse_pull_request,
    parse_pull_request_file,
    parse_repository,
    parse_search_node,
)
from github_insight.models.domain import (
    Cursor,
    FetchRequest,
    Issue,
    PageResult,
    Project,
    ProjectId,
    ProjectResource,
    ProjectType,
    PullRequest,
    PullRequestFile,
    PullRequestFiles,
    Repository,
    RepositoryId,
    SearchHit,
)
from github_insight.providers.base import GraphQLExecutor
from github_insight.providers.github_graphql import GitHubGraphQLClient
from github_insight.utils.retry import RetryExecutor, RetryPolicy

log = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

DEFAULT_NUMBER_CHUNK_SIZE = 30
DEFAULT_SEARCH_PAGE_SIZE = 30


def _shapes_for(project_id: ProjectId) -> tuple[QueryShape, QueryShape]:
    if project_id.project_type == ProjectType.USER:
        return QueryShape.USER, QueryShape.ORGANIZATION
    return QueryShape.ORGANIZATION, QueryShape.USER


def _validate_numbers(source: RepositoryId, numbers: Sequence[int]) -> tuple[int, ...]:
    """Reject non-positive numbers and drop repeats, keeping the first occurrence."""
    invalid = [n for n in numbers if not isinstance(n, int) or isinstance(n, bool) or n < 1]
    if invalid:
        raise InvalidRequestError(f"Invalid resource numbers for {source}: {invalid}")
    return tuple(dict.fromkeys(numbers))


def _chunks(numbers: tuple[int, ...], size: int) -> Iterable[tuple[int, ...]]:
    for start in range(0, len(numbers), size):
        yield numbers[start : start + size]


class MultiResourceFetcher:
    """Fetch issues, pull requests, repositories, projects and search results across many sources."""

    def __init__(
        self,
        executor: GraphQLExecutor,
        retry: RetryExecutor | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        number_chunk_size: int = DEFAULT_NUMBER_CHUNK_SIZE,
        search_page_size: int = DEFAULT_SEARCH_PAGE_SIZE,
        resolver: CrossReferenceResolver | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            executor: GraphQL executor used for every page call.
            retry: Retry executor wrapped around every page call.
            max_concurrency: Maximum number of sources fetched at once.
            number_chunk_size: Numbers looked up per multi-number query.
            search_page_size: Results requested per search page.
            resolver: Cross-reference resolver used while parsing.
        """
        if number_chunk_size < 1:
            raise ValueError(f"number_chunk_size must be at least 1, got {number_chunk_size}")
        self.executor = executor
        self.retry = retry or RetryExecutor()
        self.pager = PaginatedFetcher(self.retry)
        self.fan_out = ConcurrentMultiSourceFetcher(max_concurrency)
        self.number_chunk_size = number_chunk_size
        self.search_page_size = search_page_size
        self.resolver = resolver or CrossReferenceResolver()

    @classmethod
    def from_settings(
        cls,
        settings: FetchSettings,
        executor: GraphQLExecutor | None = None,
    ) -> "MultiResourceFetcher":
        """Build a fetcher (and, unless given, a GitHub client) from settings."""
        if executor is None:
            executor = GitHubGraphQLClient.from_settings(settings)
        policy = RetryPolicy(
            max_attempts=settings.retry.max_attempts,
            rate_limit_base=settings.retry.rate_limit_base,
            retry_base=settings.retry.retry_base,
            max_delay=settings.retry.max_delay,
        )
        return cls(
            executor,
            retry=RetryExecutor(policy),
            max_concurrency=settings.concurrency.max_concurrency,
            number_chunk_size=settings.concurrency.number_chunk_size,
            search_page_size=settings.concurrency.search_page_size,
        )

    async def fetch_many(
        self,
        sources: Iterable[K],
        fetch: Callable[[K], Awaitable[list[T]]],
        on_complete: CompletionCallback[K, T] | None = None,
    ) -> AggregatedResult[K, T]:
        """Run an arbitrary per-source fetch under the concurrency bound."""
        return await self.fan_out.fetch_many(sources, fetch, on_complete=on_complete)

    # ------------------------------------------------------------------
    # Issues and pull requests
    # ------------------------------------------------------------------

    async def fetch_issues(
        self,
        requests: Mapping[RepositoryId, Sequence[int]],
    ) -> AggregatedResult[RepositoryId, Issue]:
        """Fetch issues by number, per repository.

        Args:
            requests: Issue numbers to fetch for each repository.

        Raises:
            InvalidRequestError: If any number is not a positive integer.
        """
        numbers = {repo: _validate_numbers(repo, ns) for repo, ns in requests.items()}

        async def fetch(repository: RepositoryId) -> list[Issue]:
            return await self._fetch_by_numbers(
                repository,
                numbers[repository],
                queries.multi_issue_query,
                queries.ISSUE_ALIAS_PREFIX,
                lambda node: parse_issue(node, repository, self.resolver),
                queries.MULTIPLE_ISSUES_OPERATION,
                "fetch_issues",
            )

        return await self.fetch_many(numbers, fetch)

    async def fetch_pull_requests(
        self,
        requests: Mapping[RepositoryId, Sequence[int]],
    ) -> AggregatedResult[RepositoryId, PullRequest]:
        """Fetch pull requests by number, per repository.

        Raises:
            InvalidRequestError: If any number is not a positive integer.
        """
        numbers = {repo: _validate_numbers(repo, ns) for repo, ns in requests.items()}

        async def fetch(repository: RepositoryId) -> list[PullRequest]:
            return await self._fetch_by_numbers(
                repository,
                numbers[repository],
                queries.multi_pull_request_query,
                queries.PULL_REQUEST_ALIAS_PREFIX,
                lambda node: parse_pull_request(node, repository, self.resolver),
                queries.MULTIPLE_PULL_REQUESTS_OPERATION,
                "fetch_pull_requests",
            )

        return await self.fetch_many(numbers, fetch)

    async def fetch_pull_request_files(
        self,
        requests: Mapping[RepositoryId, Sequence[int]],
    ) -> AggregatedResult[RepositoryId, PullRequestFiles]:
        """Fetch the changed files of pull requests, per repository.

        Pull requests of one repository are read one after the other, each
        following file pagination. A pull request whose files cannot be read
        is logged and skipped; its repository still succeeds with the rest.

        Raises:
            InvalidRequestError: If any number is not a positive integer.
        """
        numbers = {repo: _validate_numbers(repo, ns) for repo, ns in requests.items()}
        document = queries.pull_request_files_query()

        async def fetch_page(request: FetchRequest, shape: QueryShape) -> PageResult[PullRequestFile]:
            variables = {**request.variables, "cursor": request.cursor.value if request.cursor else None}
            data = await self.executor.execute(
                document,
                variables,
                operation_name=queries.PULL_REQUEST_FILES_OPERATION,
            )
            pull_request = (data.get("repository") or {}).get("pullRequest")
            if pull_request is None:
                raise ResourceNotFoundError(f"Pull request #{variables['number']} not found in {request.source}")
            connection = pull_request.get("files") or {}
            files = [parse_pull_request_file(node) for node in connection.get("nodes") or [] if node]
            return PageResult.from_page_info(files, connection.get("pageInfo"))

        async def fetch(repository: RepositoryId) -> list[PullRequestFiles]:
            collected: list[PullRequestFiles] = []
            for number in numbers[repository]:
                request = FetchRequest(
                    source=repository,
                    numbers=(number,),
                    variables={"owner": repository.owner, "name": repository.name, "number": number},
                )
                try:
                    files = await self.pager.fetch_all(request, fetch_page, name="fetch_pull_request_files")
                except Exception as e:
                    log.warning(
                        "pull_request_files_skipped",
                        repository=str(repository),
                        number=number,
                        error=str(e),
                    )
                    continue
                collected.append(PullRequestFiles(number, files))
            return collected

        return await self.fetch_many(numbers, fetch)

    async def _fetch_by_numbers(
        self,
        repository: RepositoryId,
        numbers: tuple[int, ...],
        build_query: Callable[[tuple[int, ...]], str],
        alias_prefix: str,
        parse: Callable[[dict[str, Any]], T],
        operation_name: str,
        name: str,
    ) -> list[T]:
        """Look ``numbers`` up in chunks; ``operation_name`` must be the one ``build_query`` declares."""
        items: list[T] = []
        for chunk in _chunks(numbers, self.number_chunk_size):
            request = FetchRequest(
                source=repository,
                query=build_query(chunk),
                numbers=chunk,
                variables={"owner": repository.owner, "name": repository.name},
            )
            data = await self.retry.execute(
                lambda request=request: self.executor.execute(
                    request.query, request.variables, operation_name=operation_name
                ),
                name=name,
            )
            container = data.get("repository")
            if container is None:
                raise ResourceNotFoundError(f"Repository {repository} not found")
            items.extend(parse(node) for _, node in parse_aliased_nodes(container, alias_prefix, chunk))
        return items

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    async def fetch_repositories(
        self,
        repositories: Iterable[RepositoryId],
    ) -> AggregatedResult[RepositoryId, Repository]:
        """Fetch repository metadata; each successful entry holds one ``Repository``."""

        async def fetch(repository: RepositoryId) -> list[Repository]:
            variables = {"owner": repository.owner, "name": repository.name}
            data = await self.retry.execute(
                lambda: self.executor.execute(
                    queries.REPOSITORY_QUERY, variables, operation_name=queries.REPOSITORY_OPERATION
                ),
                name="fetch_repository",
            )
            node = data.get("repository")
            if node is None:
                raise ResourceNotFoundError(f"Repository {repository} not found")
            return [parse_repository(node, repository)]

        return await self.fetch_many(repositories, fetch)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def _project_node(self, data: dict[str, Any], project_id: ProjectId, shape: QueryShape) -> dict[str, Any]:
        owner = data.get(shape.value)
        project = owner.get("projectV2") if owner else None
        if project is None:
            raise ResourceNotFoundError(
                f"Project {project_id.number} not found under {shape.value} {project_id.owner}"
            )
        return project

    async def fetch_projects(self, projects: Iterable[ProjectId]) -> AggregatedResult[ProjectId, Project]:
        """Fetch project metadata; each successful entry holds one ``Project``."""

        async def fetch_page(request: FetchRequest, shape: QueryShape) -> PageResult[Project]:
            project_id = request.source
            assert isinstance(project_id, ProjectId)
            data = await self.executor.execute(
                queries.project_query(user=shape == QueryShape.USER),
                request.variables,
                operation_name=queries.PROJECT_OPERATION,
            )
            return PageResult(items=[parse_project(self._project_node(data, project_id, shape), project_id)])

        async def fetch(project_id: ProjectId) -> list[Project]:
            request = FetchRequest(
                source=project_id,
                variables={"owner": project_id.owner, "number": project_id.number},
            )
            return await self.pager.fetch_all(request, fetch_page, _shapes_for(project_id), name="fetch_project")

        return await self.fetch_many(projects, fetch)

    async def fetch_project_resources(
        self,
        projects: Iterable[ProjectId],
    ) -> AggregatedResult[ProjectId, ProjectResource]:
        """Fetch every item of each project, following item pagination.

        Items whose content is not visible, or that fail to decode, are
        logged and skipped without failing the project.
        """

        async def fetch_page(request: FetchRequest, shape: QueryShape) -> PageResult[ProjectResource]:
            project_id = request.source
            assert isinstance(project_id, ProjectId)
            variables = {**request.variables, "cursor": request.cursor.value if request.cursor else None}
            data = await self.executor.execute(
                queries.project_items_query(user=shape == QueryShape.USER),
                variables,
                operation_name=queries.PROJECT_ITEMS_OPERATION,
            )
            connection = self._project_node(data, project_id, shape).get("items") or {}

            resources: list[ProjectResource] = []
            for node in connection.get("nodes") or []:
                if not node:
                    continue
                try:
                    resource = parse_project_item(node)
                except ResponseDecodeError as e:
                    log.warning(
                        "project_item_decode_failed",
                        project=str(project_id),
                        item_id=node.get("id"),
                        error=str(e),
                    )
                    continue
                if resource is not None:
                    resources.append(resource)
            return PageResult.from_page_info(resources, connection.get("pageInfo"))

        async def fetch(project_id: ProjectId) -> list[ProjectResource]:
            request = FetchRequest(
                source=project_id,
                variables={"owner": project_id.owner, "number": project_id.number},
            )
            return await self.pager.fetch_all(
                request,
                fetch_page,
                _shapes_for(project_id),
                name="fetch_project_resources",
            )

        return await self.fetch_many(projects, fetch)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_resources(
        self,
        repositories: Iterable[RepositoryId],
        query: str,
        max_results: int | None = None,
        cursors: Mapping[RepositoryId, Cursor] | None = None,
    ) -> AggregatedResult[RepositoryId, SearchHit]:
        """Search issues and pull requests in each repository.

        Args:
            repositories: Repositories to search.
            query: Search query; ``repo:`` qualifiers are replaced by each
                target repository.
            max_results: Maximum hits per repository; ``None`` reads every
                page.
            cursors: Cursors to resume from, per repository.
        """
        if max_results is not None and max_results < 1:
            raise InvalidRequestError(f"max_results must be positive, got {max_results}")
        document = queries.search_query()
        cursors = cursors or {}

        async def fetch_page(request: FetchRequest, shape: QueryShape) -> PageResult[SearchHit]:
            variables = {
                "query": request.query,
                "first": self.search_page_size,
                "cursor": request.cursor.value if request.cursor else None,
            }
            data = await self.executor.execute(document, variables, operation_name=queries.SEARCH_OPERATION)
            search = data.get("search")
            if search is None:
                raise ResponseDecodeError("Search response has no search object")

            hits: list[SearchHit] = []
            for node in search.get("nodes") or []:
                if not node:
                    continue
                hit = parse_search_node(node, self.resolver)
                if hit is not None:
                    hits.append(hit)
            return PageResult.from_page_info(hits, search.get("pageInfo"))

        async def fetch(repository: RepositoryId) -> list[SearchHit]:
            request = FetchRequest(
                source=repository,
                query=queries.normalize_repo_search_query(query, repository),
                cursor=cursors.get(repository),
            )
            return await self.pager.fetch_all(request, fetch_page, name="search_resources", max_items=max_results)

        return await self.fetch_many(repositories, fetch)
