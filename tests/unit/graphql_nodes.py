"""Raw GraphQL node builders and a fake executor shared by the unit tests."""

from collections.abc import Callable
from typing import Any

from github_insight.providers.base import GraphQLExecutor

TIMESTAMP = "2024-05-01T12:00:00Z"


class FakeGraphQLExecutor(GraphQLExecutor):
    """GraphQL executor answering from a handler function.

    The handler receives ``(operation_name, variables)`` and returns the
    ``data`` object or raises. Every call is recorded in ``calls``.
    """

    def __init__(self, handler: Callable[[str | None, dict[str, Any]], dict[str, Any]]) -> None:
        self.handler = handler
        self.calls: list[tuple[str | None, dict[str, Any], str]] = []

    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        operation_name: str | None = None,
    ) -> dict[str, Any]:
        variables = dict(variables or {})
        self.calls.append((operation_name, variables, query))
        return self.handler(operation_name, variables)


def repository_ref(owner: str = "octo", name: str = "repo") -> dict[str, Any]:
    return {"owner": {"login": owner}, "name": name}


def link_target(typename: str, number: int, owner: str = "octo", name: str = "repo") -> dict[str, Any]:
    return {
        "__typename": typename,
        "number": number,
        "title": f"{typename} {number}",
        "url": f"https://github.com/{owner}/{name}/{'pull' if typename == 'PullRequest' else 'issues'}/{number}",
        "state": "OPEN",
        "repository": repository_ref(owner, name),
    }


def timeline_event(typename: str, target: dict[str, Any], created_at: str = TIMESTAMP) -> dict[str, Any]:
    key = "source" if typename == "CrossReferencedEvent" else "subject"
    return {"__typename": typename, "createdAt": created_at, key: target}


def issue_node(
    number: int = 1,
    body: str = "",
    comments: list[str] | None = None,
    events: list[dict[str, Any]] | None = None,
    owner: str = "octo",
    name: str = "repo",
    **overrides: Any,
) -> dict[str, Any]:
    """Raw issue node as returned by the issue selection."""
    node = {
        "__typename": "Issue",
        "number": number,
        "title": f"Issue {number}",
        "body": body,
        "state": "OPEN",
        "createdAt": TIMESTAMP,
        "updatedAt": TIMESTAMP,
        "closedAt": None,
        "url": f"https://github.com/{owner}/{name}/issues/{number}",
        "locked": False,
        "author": {"login": "alice"},
        "assignees": {"nodes": [{"login": "bob"}]},
        "labels": {"nodes": [{"name": "bug"}]},
        "milestone": {"number": 2},
        "comments": {
            "nodes": [
                {
                    "body": text,
                    "createdAt": TIMESTAMP,
                    "updatedAt": TIMESTAMP,
                    "url": f"https://github.com/{owner}/{name}/issues/{number}#issuecomment-{index}",
                    "author": {"login": "carol"},
                }
                for index, text in enumerate(comments or [])
            ],
            "totalCount": len(comments or []),
        },
        "timelineItems": {"nodes": events or []},
        "repository": repository_ref(owner, name),
    }
    node.update(overrides)
    return node


def pull_request_node(number: int = 1, body: str = "", **overrides: Any) -> dict[str, Any]:
    """Raw pull request node as returned by the pull request selection."""
    node = issue_node(number, body=body)
    node.update(
        {
            "__typename": "PullRequest",
            "title": f"Pull request {number}",
            "url": f"https://github.com/octo/repo/pull/{number}",
            "mergedAt": None,
            "isDraft": False,
            "baseRefName": "main",
            "headRefName": f"feature-{number}",
            "additions": 10,
            "deletions": 2,
            "changedFiles": 3,
            "reviewRequests": {
                "nodes": [
                    {"requestedReviewer": {"__typename": "User", "login": "dave"}},
                    {"requestedReviewer": {"__typename": "Team", "name": "core"}},
                ]
            },
        }
    )
    for key in ("locked", "milestone"):
        node.pop(key)
    node.update(overrides)
    return node


def page_info(end_cursor: str | None = None) -> dict[str, Any]:
    return {"hasNextPage": end_cursor is not None, "endCursor": end_cursor}


