"""
Abstract base class for GraphQL executors.

The fetch engine never opens connections itself. Every page call goes
through a ``GraphQLExecutor``, which sends one query document and returns the
decoded ``data`` object or raises a raw error for the retry classifier.
"""

from abc import ABC, abstractmethod
from typing import Any


class GraphQLExecutor(ABC):
    """Interface of the outbound GraphQL collaborator.

    Implementations must raise errors the classifier understands:

    - ``ApiError`` (or ``httpx.HTTPStatusError``) for non-2xx responses,
      carrying the status code and body text
    - ``GraphQLResponseError`` when the response carries an ``errors`` array
    - ``ResponseDecodeError`` when the body is not JSON or has no ``data``
    - ``TimeoutError`` or ``httpx`` transport errors for network failures

    A single call must be safe to re-issue; the engine retries it.
    """

    @abstractmethod
    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        operation_name: str | None = None,
    ) -> dict[str, Any]:
        """Execute one GraphQL query.

        Args:
            query: GraphQL query document.
            variables: Query variables.
            operation_name: Name used in log events and, when the document
                holds several operations, to pick one.

        Returns:
            The ``data`` object of the response.
        """
        pass
