"""
Classification of raw fetch errors into retry categories.

Every error raised by a page call, whether an HTTP status error, a GraphQL
``errors`` payload, a transport failure or a decode problem, is mapped to
exactly one of three outcomes:

- ``RateLimited``: back off on the (longer) rate-limit schedule and retry.
- ``Retryable``: back off on the (shorter) transient schedule and retry.
- ``NonRetryable``: fail immediately. ``not_found=True`` marks semantic
  "could not resolve" errors that callers treat as an expected per-item
  outcome rather than a crash.

Classification is pure and total: it never raises, never logs, and falls
back to ``Retryable`` for anything it does not recognise. The retry budget
bounds how long an unknown error can keep a source busy.

Rule order:
    1. HTTP 429 is rate limited.
    2. HTTP 5xx is retryable.
    3. HTTP 403 is rate limited when the body mentions a rate limit,
       otherwise it and every other 4xx is non-retryable.
    4. Errors without a status: rate-limit phrasing wins, then GraphQL
       message rules, then error-type rules (protocol and decode errors are
       non-retryable, transport and timeout errors are retryable).
    5. Anything else is retryable.

Example:
    >>> classify(ApiError("Forbidden", 403, "API rate limit exceeded"))
    RateLimited(reason='HTTP 403: API rate limit exceeded')
"""

import json
from collections.abc import Iterable
from dataclasses import dataclass

import httpx

from github_insight.exceptions import (
    ApiError,
    GraphQLResponseError,
    PaginationError,
    ResourceNotFoundError,
    ResponseDecodeError,
)

RATE_LIMIT_PHRASES = ("rate limit", "ratelimit", "rate_limited")

# GraphQL errors GitHub occasionally returns for a well-formed query; a
# re-issue of the same document usually succeeds.
TRANSIENT_QUERY_ERRORS = (
    "A query attribute must be specified and must be a string",
    "Expected NAME",
    "Expected one of SCHEMA, SCALAR",
)

TRANSIENT_SERVER_PHRASES = ("timeout", "timed out", "server error", "something went wrong")

NOT_FOUND_PHRASES = ("Could not resolve to a", "Could not resolve to an")

CLIENT_QUERY_PHRASES = ("validation", "syntax")


@dataclass(frozen=True)
class Retryable:
    """Transient failure; retry on the short backoff schedule."""

    reason: str

    @property
    def label(self) -> str:
        return "retryable"


@dataclass(frozen=True)
class RateLimited:
    """Upstream rate limit hit; retry on the long backoff schedule."""

    reason: str = "rate limited"

    @property
    def label(self) -> str:
        return "rate_limited"


@dataclass(frozen=True)
class NonRetryable:
    """Permanent failure for this request; do not retry."""

    reason: str
    not_found: bool = False

    @property
    def label(self) -> str:
        return "not_found" if self.not_found else "non_retryable"


RetryOutcome = Retryable | RateLimited | NonRetryable


def mentions_rate_limit(message: str) -> bool:
    """Return True if ``message`` contains rate-limit phrasing."""
    lowered = message.lower()
    return any(phrase in lowered for phrase in RATE_LIMIT_PHRASES)


def _status_and_body(error: BaseException) -> tuple[int | None, str]:
    if isinstance(error, ApiError):
        return error.status_code, error.response_text or error.message
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.text
        except httpx.ResponseNotRead:
            body = ""
        return error.response.status_code, body or str(error)
    return None, str(error)


def classify_status(status: int, body: str) -> RetryOutcome:
    """Classify an HTTP error response by status code and body."""
    summary = f"HTTP {status}: {body}" if body else f"HTTP {status}"

    if status == 429:
        return RateLimited(summary)
    if 500 <= status <= 599:
        return Retryable(summary)
    if status == 403 and mentions_rate_limit(body):
        return RateLimited(summary)
    if 400 <= status <= 499:
        return NonRetryable(summary, not_found=status == 404)
    return Retryable(f"Unexpected status: {summary}")


def is_not_found_error(error: object) -> bool:
    """Return True if a raw GraphQL ``errors`` entry reports a resource that does not resolve."""
    if not isinstance(error, dict):
        return False
    if error.get("type") == "NOT_FOUND":
        return True
    message = error.get("message") or ""
    return any(phrase in message for phrase in NOT_FOUND_PHRASES)


def classify_graphql_messages(messages: Iterable[str]) -> RetryOutcome:
    """Classify the messages of a GraphQL ``errors`` array.

    Messages are joined and matched as one string, so a response mixing a
    not-found error with a rate-limit error is treated as rate limited.
    """
    message = ", ".join(messages)

    if any(marker in message for marker in TRANSIENT_QUERY_ERRORS):
        return Retryable(f"GraphQL query construction error: {message}")
    if mentions_rate_limit(message):
        return RateLimited(f"GraphQL rate limit error: {message}")
    lowered = message.lower()
    if any(phrase in lowered for phrase in TRANSIENT_SERVER_PHRASES):
        return Retryable(f"GraphQL server error: {message}")
    if any(phrase in message for phrase in NOT_FOUND_PHRASES):
        return NonRetryable(f"Resource not found: {message}", not_found=True)
    if any(phrase in lowered for phrase in CLIENT_QUERY_PHRASES):
        return NonRetryable(f"GraphQL validation error: {message}")
    return Retryable(f"GraphQL error: {message}")


def classify(error: BaseException) -> RetryOutcome:
    """Map a raw fetch error to its retry category.

    Args:
        error: Any exception raised by a page call.

    Returns:
        Exactly one of ``Retryable``, ``RateLimited`` or ``NonRetryable``.
    """
    status, body = _status_and_body(error)
    if status is not None:
        return classify_status(status, body)

    if isinstance(error, GraphQLResponseError):
        return classify_graphql_messages(error.messages)

    message = str(error) or type(error).__name__
    if mentions_rate_limit(message):
        return RateLimited(message)

    if isinstance(error, PaginationError):
        return NonRetryable(f"Pagination protocol violation: {message}")
    if isinstance(error, ResourceNotFoundError):
        return NonRetryable(f"Resource not found: {message}", not_found=True)
    if isinstance(error, (ResponseDecodeError, json.JSONDecodeError)):
        return NonRetryable(f"Response decode error: {message}")
    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        return Retryable(f"Request timed out: {message}")
    if isinstance(error, (httpx.TransportError, ConnectionError, OSError)):
        return Retryable(f"Transport error: {message}")

    return Retryable(f"Unclassified error ({type(error).__name__}): {message}")
