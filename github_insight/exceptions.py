"""Custom exception hierarchy for github-insight.

This module defines the errors raised by the fetch engine and its
collaborators. The retry layer classifies these (together with raw
``httpx`` transport errors and ``TimeoutError``) into retry categories, so
the attributes carried here are what classification reads.

Exception Hierarchy:
    GitHubInsightError (base)
    ├── ConfigurationError
    ├── InvalidRequestError
    └── FetchError
        ├── ApiError
        ├── GraphQLResponseError
        ├── ResponseDecodeError
        ├── ResourceNotFoundError
        └── PaginationError

Example Usage:
    >>> from github_insight.exceptions import ConfigurationError
    >>> try:
    ...     load_config(path)
    ... except FileNotFoundError as e:
    ...     raise ConfigurationError(f"Config file not found: {path}") from e
"""


class GitHubInsightError(Exception):
    """Base exception for all github-insight errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(GitHubInsightError):
    """Configuration-related errors.

    Raised when configuration files are invalid, missing, or contain
    incompatible settings.
    """

    pass


class InvalidRequestError(GitHubInsightError):
    """A fetch request was malformed and rejected before dispatch.

    This is the only batch-level failure: once sources are dispatched,
    failures are recorded per source instead of raised.
    """

    pass


class FetchError(GitHubInsightError):
    """Base class for errors raised while fetching from the GraphQL API."""

    pass


class ApiError(FetchError):
    """The API answered with a non-success HTTP status.

    Attributes:
        status_code: HTTP status code of the response
        response_text: Response body text (may be empty)
    """

    def __init__(self, message: str, status_code: int, response_text: str = "") -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code
            response_text: Response body text
        """
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(f"{message} (HTTP {status_code})")
        self.message = message


class GraphQLResponseError(FetchError):
    """The response carried a non-empty GraphQL ``errors`` array.

    Attributes:
        messages: The ``message`` of every reported GraphQL error
    """

    def __init__(self, messages: list[str]) -> None:
        self.messages = list(messages)
        super().__init__(", ".join(self.messages) or "GraphQL error")


class ResponseDecodeError(FetchError):
    """The response body was not JSON or did not have the expected shape."""

    pass


class ResourceNotFoundError(FetchError):
    """The response decoded fine but the requested node was missing.

    Typical cause: a project queried under the wrong owner type, or a
    repository that does not exist or is not visible to the token.
    """

    pass


class PaginationError(FetchError):
    """The upstream broke the cursor protocol.

    Raised when a page reports more results without a cursor, or returns a
    cursor that was already consumed for the same source. Never retried.
    """

    pass
