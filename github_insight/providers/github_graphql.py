"""
GitHub GraphQL executor built on httpx.

``GitHubGraphQLClient`` posts query documents to the GitHub v4 endpoint over
a pooled ``httpx.AsyncClient`` and maps every failure to a raw error the
retry classifier understands. It does not retry on its own.
"""

import asyncio
import json
from typing import Any

import httpx
import structlog

from github_insight.config.settings import FetchSettings
from github_insight.engine.classifier import is_not_found_error
from github_insight.exceptions import ApiError, GraphQLResponseError, ResponseDecodeError
from github_insight.providers.base import GraphQLExecutor

log = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com/graphql"
DEFAULT_REQUEST_TIMEOUT = 10.0
USER_AGENT = "github-insight"


class GitHubGraphQLClient(GraphQLExecutor):
    """GraphQL executor for the GitHub API.

    Each call is bounded by ``request_timeout`` through ``asyncio.wait_for``,
    independently of any retry budget. A timeout surfaces as ``TimeoutError``.

    Example:
        >>> async with GitHubGraphQLClient(token=token) as client:
        ...     data = await client.execute(REPOSITORY_QUERY, {"owner": "a", "name": "b"})
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str = DEFAULT_API_URL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_connections: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: GitHub token sent as a bearer token. Anonymous requests
                are rejected by the GraphQL API, so a token is required in
                practice.
            api_url: GraphQL endpoint.
            request_timeout: Timeout in seconds for a single call.
            max_connections: Connection pool size.
            transport: Optional httpx transport (used by tests).
        """
        self.token = token
        self.api_url = api_url
        self.request_timeout = request_timeout
        self.max_connections = max_connections
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: FetchSettings) -> "GitHubGraphQLClient":
        """Create a client from the ``github`` and ``concurrency`` settings."""
        token = settings.github.token.get_secret_value() if settings.github.token else None
        return cls(
            token=token,
            api_url=settings.github.api_url,
            request_timeout=settings.github.request_timeout,
            max_connections=settings.concurrency.max_concurrency,
        )

    async def connect(self) -> None:
        """Create the underlying HTTP client if needed."""
        async with self._lock:
            if self._client is not None:
                return

            headers = {
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"

            self._client = httpx.AsyncClient(
                headers=headers,
                limits=httpx.Limits(
                    max_connections=self.max_connections,
                    max_keepalive_connections=self.max_connections,
                ),
                # asyncio.wait_for enforces the per-call bound; this keeps a
                # stalled socket from outliving it.
                timeout=self.request_timeout,
                transport=self._transport,
            )
            log.info("graphql_client_connected", api_url=self.api_url)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
                log.info("graphql_client_closed", api_url=self.api_url)

    async def __aenter__(self) -> "GitHubGraphQLClient":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        operation_name: str | None = None,
    ) -> dict[str, Any]:
        """Execute a query and return its ``data`` object.

        Raises:
            TimeoutError: If the call exceeds ``request_timeout``.
            ApiError: On a non-2xx response.
            GraphQLResponseError: If the response carries errors other than
                not-found errors next to a data object.
            ResponseDecodeError: If the body is not a GraphQL response.
            httpx.TransportError: On connection failures.
        """
        if self._client is None:
            await self.connect()
        assert self._client is not None

        payload: dict[str, Any] = {"query": query, "variables": variables or {}}
        if operation_name:
            payload["operationName"] = operation_name

        log.debug("graphql_request", operation=operation_name, variables=variables)
        response = await asyncio.wait_for(
            self._client.post(self.api_url, json=payload),
            timeout=self.request_timeout,
        )
        return self._decode(response, operation_name)

    @staticmethod
    def _decode(response: httpx.Response, operation_name: str | None) -> dict[str, Any]:
        if not response.is_success:
            log.debug(
                "graphql_http_error",
                operation=operation_name,
                status_code=response.status_code,
            )
            raise ApiError(
                f"GitHub GraphQL request failed: {_error_summary(response)}",
                status_code=response.status_code,
                response_text=response.text,
            )

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ResponseDecodeError(f"Response is not valid JSON: {e}") from e

        if not isinstance(body, dict):
            raise ResponseDecodeError(f"Unexpected response type: {type(body).__name__}")

        errors = body.get("errors")
        data = body.get("data")
        if errors and isinstance(data, dict) and all(is_not_found_error(error) for error in errors):
            # Aliases that do not resolve come back null next to NOT_FOUND errors.
            for error in errors:
                log.warning(
                    "graphql_resource_not_found",
                    operation=operation_name,
                    path=error.get("path"),
                    message=error.get("message"),
                )
            return data
        if errors:
            messages = [
                error.get("message", str(error)) if isinstance(error, dict) else str(error) for error in errors
            ]
            raise GraphQLResponseError(messages)

        if not isinstance(data, dict):
            raise ResponseDecodeError("Response has no data object")
        return data


def _error_summary(response: httpx.Response, limit: int = 200) -> str:
    """Short description of an error response: its JSON ``message`` or the start of the body."""
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    text = response.text.strip()
    if text:
        return text[:limit]
    return response.reason_phrase or "HTTP error"
