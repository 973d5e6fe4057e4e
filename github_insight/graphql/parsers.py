"""Conversion of raw GraphQL response nodes into domain models.

Every public ``parse_*`` function takes the decoded JSON node and returns a
domain object. Nodes of a closed set of shapes (issue or pull request, user
or organization owner, issue/PR/draft project content, the three timeline
event types) are dispatched on ``__typename``. Unknown variants are logged
and skipped; a node that lacks a required field raises
``ResponseDecodeError``, which the retry classifier treats as
non-retryable.

Issues and pull requests get their ``linked_resources`` resolved here, from
the timeline events plus the body and comment texts.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import structlog

from github_insight.engine.cross_reference import CrossReferenceResolver
from github_insight.exceptions import ResponseDecodeError
from github_insight.models.domain import (
    Comment,
    CrossReferenceEvidence,
    DraftIssue,
    Issue,
    IssueState,
    LinkedResource,
    Milestone,
    Project,
    ProjectFieldValue,
    ProjectId,
    ProjectItemContent,
    ProjectResource,
    PullRequest,
    PullRequestFile,
    PullRequestState,
    Repository,
    RepositoryId,
    ResourceKind,
    SearchHit,
    TimelineEvent,
    TimelineEventKind,
)

log = structlog.get_logger(__name__)

UNKNOWN_AUTHOR = "Unknown"

_TIMELINE_KINDS = {
    "CrossReferencedEvent": (TimelineEventKind.CROSS_REFERENCED, "source"),
    "ConnectedEvent": (TimelineEventKind.CONNECTED, "subject"),
    "DisconnectedEvent": (TimelineEventKind.DISCONNECTED, "subject"),
}

_LINKABLE_KINDS = {
    "Issue": ResourceKind.ISSUE,
    "PullRequest": ResourceKind.PULL_REQUEST,
}

_FIELD_VALUE_KEYS = {
    "ProjectV2ItemFieldTextValue": "text",
    "ProjectV2ItemFieldSingleSelectValue": "name",
    "ProjectV2ItemFieldNumberValue": "number",
    "ProjectV2ItemFieldDateValue": "date",
}


@contextmanager
def _decoding(what: str) -> Iterator[None]:
    """Turn shape errors raised while reading a node into ``ResponseDecodeError``."""
    try:
        yield
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ResponseDecodeError(f"Malformed {what} node: {type(e).__name__}: {e}") from e


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp from the API (``Z`` suffix allowed)."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _required_datetime(value: str | None, field_name: str) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"missing {field_name}")
    return parsed


def _logins(connection: dict[str, Any] | None) -> list[str]:
    if not connection:
        return []
    return [node["login"] for node in connection.get("nodes") or [] if node and node.get("login")]


def _names(connection: dict[str, Any] | None) -> list[str]:
    if not connection:
        return []
    return [node["name"] for node in connection.get("nodes") or [] if node and node.get("name")]


def _author(node: dict[str, Any]) -> str | None:
    author = node.get("author")
    return author.get("login") if author else None


def parse_repository_ref(node: dict[str, Any]) -> RepositoryId:
    """Read the ``repository { owner { login } name }`` selection."""
    with _decoding("repository reference"):
        return RepositoryId(node["owner"]["login"], node["name"])


def parse_comment(node: dict[str, Any]) -> Comment:
    with _decoding("comment"):
        return Comment(
            body=node.get("body") or "",
            author=_author(node),
            created_at=_required_datetime(node.get("createdAt"), "createdAt"),
            updated_at=parse_datetime(node.get("updatedAt")),
            url=node.get("url") or "",
        )


def _parse_comments(node: dict[str, Any]) -> tuple[list[Comment], int]:
    connection = node.get("comments") or {}
    comments = [parse_comment(c) for c in connection.get("nodes") or [] if c]
    return comments, connection.get("totalCount", len(comments))


def parse_linked_resource(node: dict[str, Any] | None) -> LinkedResource | None:
    """Convert the subject or source of a timeline event.

    Returns ``None`` for subject types that cannot be linked (an empty
    selection) or for incomplete nodes.
    """
    if not node:
        return None
    kind = _LINKABLE_KINDS.get(node.get("__typename", ""))
    if kind is None:
        return None
    repository = node.get("repository") or {}
    owner = (repository.get("owner") or {}).get("login")
    name = repository.get("name")
    number = node.get("number")
    if not owner or not name or not isinstance(number, int):
        return None
    return LinkedResource(kind, RepositoryId(owner, name), number)


def parse_timeline_events(node: dict[str, Any]) -> list[TimelineEvent]:
    """Extract relationship events from an issue or pull request node.

    Unknown event types are skipped. Events whose subject cannot be linked
    are kept with ``subject=None`` so the resolver can report them.
    """
    events: list[TimelineEvent] = []
    timeline = node.get("timelineItems") or {}
    for event_node in timeline.get("nodes") or []:
        if not event_node:
            continue
        typename = event_node.get("__typename", "")
        if typename not in _TIMELINE_KINDS:
            log.debug("unknown_timeline_event_skipped", typename=typename)
            continue
        kind, subject_key = _TIMELINE_KINDS[typename]
        try:
            created_at = parse_datetime(event_node.get("createdAt"))
        except ValueError:
            log.warning("timeline_event_timestamp_invalid", typename=typename, value=event_node.get("createdAt"))
            created_at = None
        events.append(
            TimelineEvent(
                kind=kind,
                created_at=created_at,
                subject=parse_linked_resource(event_node.get(subject_key)),
            )
        )
    return events


def build_evidence(node: dict[str, Any], comments: list[Comment]) -> CrossReferenceEvidence:
    """Collect the explicit and incidental channels of one issue or pull request."""
    texts = [node.get("body") or ""]
    texts.extend(comment.body for comment in comments)
    return CrossReferenceEvidence(events=parse_timeline_events(node), texts=texts)


def parse_issue(
    node: dict[str, Any],
    repository: RepositoryId | None = None,
    resolver: CrossReferenceResolver | None = None,
) -> Issue:
    """Convert an issue node.

    Args:
        node: Raw issue node.
        repository: Owning repository. Read from the node's ``repository``
            selection when omitted.
        resolver: Cross-reference resolver; a fresh one by default.
    """
    resolver = resolver or CrossReferenceResolver()
    with _decoding("issue"):
        comments, comments_count = _parse_comments(node)
        milestone = node.get("milestone")
        issue = Issue(
            repository=repository or parse_repository_ref(node["repository"]),
            number=node["number"],
            title=node["title"],
            body=node.get("body") or None,
            state=IssueState(node["state"].lower()),
            author=_author(node) or UNKNOWN_AUTHOR,
            created_at=_required_datetime(node.get("createdAt"), "createdAt"),
            updated_at=_required_datetime(node.get("updatedAt"), "updatedAt"),
            url=node.get("url") or "",
            closed_at=parse_datetime(node.get("closedAt")),
            assignees=_logins(node.get("assignees")),
            labels=_names(node.get("labels")),
            comments=comments,
            comments_count=comments_count,
            milestone_number=milestone.get("number") if milestone else None,
            locked=bool(node.get("locked", False)),
        )
        issue.linked_resources = resolver.resolve(build_evidence(node, comments))
    return issue


def _reviewers(node: dict[str, Any]) -> list[str]:
    reviewers = []
    for request in (node.get("reviewRequests") or {}).get("nodes") or []:
        reviewer = (request or {}).get("requestedReviewer") or {}
        name = reviewer.get("login") or reviewer.get("name")
        if name:
            reviewers.append(name)
    return reviewers


def parse_pull_request(
    node: dict[str, Any],
    repository: RepositoryId | None = None,
    resolver: CrossReferenceResolver | None = None,
) -> PullRequest:
    """Convert a pull request node. Arguments as ``parse_issue``."""
    resolver = resolver or CrossReferenceResolver()
    with _decoding("pull request"):
        comments, comments_count = _parse_comments(node)
        pull_request = PullRequest(
            repository=repository or parse_repository_ref(node["repository"]),
            number=node["number"],
            title=node["title"],
            body=node.get("body") or None,
            state=PullRequestState(node["state"].lower()),
            author=_author(node) or UNKNOWN_AUTHOR,
            created_at=_required_datetime(node.get("createdAt"), "createdAt"),
            updated_at=_required_datetime(node.get("updatedAt"), "updatedAt"),
            url=node.get("url") or "",
            base_branch=node.get("baseRefName") or "",
            head_branch=node.get("headRefName") or "",
            closed_at=parse_datetime(node.get("closedAt")),
            merged_at=parse_datetime(node.get("mergedAt")),
            is_draft=bool(node.get("isDraft", False)),
            additions=node.get("additions") or 0,
            deletions=node.get("deletions") or 0,
            changed_files=node.get("changedFiles") or 0,
            assignees=_logins(node.get("assignees")),
            reviewers=_reviewers(node),
            labels=_names(node.get("labels")),
            comments=comments,
            comments_count=comments_count,
        )
        pull_request.linked_resources = resolver.resolve(build_evidence(node, comments))
    return pull_request


def parse_aliased_nodes(
    container: dict[str, Any] | None,
    prefix: str,
    numbers: list[int] | tuple[int, ...],
) -> Iterator[tuple[int, dict[str, Any]]]:
    """Yield ``(number, node)`` for each non-null alias of a multi-number query.

    Null aliases (numbers that do not exist or are not visible) are logged
    and skipped.
    """
    if container is None:
        return
    for index, number in enumerate(numbers):
        node = container.get(f"{prefix}{index}")
        if node is None:
            log.warning("resource_not_found", alias=f"{prefix}{index}", number=number)
            continue
        yield number, node


def parse_search_node(node: dict[str, Any], resolver: CrossReferenceResolver | None = None) -> SearchHit | None:
    """Convert one search result node; ``None`` for node types we do not collect."""
    typename = node.get("__typename")
    if typename == "Issue":
        return parse_issue(node, resolver=resolver)
    if typename == "PullRequest":
        return parse_pull_request(node, resolver=resolver)
    log.debug("search_node_skipped", typename=typename)
    return None


def parse_repository(node: dict[str, Any], repository_id: RepositoryId) -> Repository:
    with _decoding("repository"):
        milestones = [
            Milestone(
                number=m["number"],
                title=m["title"],
                state=(m.get("state") or "OPEN").lower(),
                description=m.get("description"),
                due_on=parse_datetime(m.get("dueOn")),
            )
            for m in (node.get("milestones") or {}).get("nodes") or []
            if m
        ]
        return Repository(
            repository_id=repository_id,
            url=node.get("url") or repository_id.url,
            description=node.get("description"),
            language=(node.get("primaryLanguage") or {}).get("name"),
            default_branch=(node.get("defaultBranchRef") or {}).get("name"),
            created_at=parse_datetime(node.get("createdAt")),
            updated_at=parse_datetime(node.get("updatedAt")),
            labels=_names(node.get("labels")),
            milestones=milestones,
        )


def parse_project(node: dict[str, Any], project_id: ProjectId) -> Project:
    with _decoding("project"):
        return Project(
            project_id=project_id,
            title=node["title"],
            url=node.get("url") or project_id.url,
            description=node.get("shortDescription"),
            readme=node.get("readme"),
            closed=bool(node.get("closed", False)),
            public=bool(node.get("public", False)),
            created_at=parse_datetime(node.get("createdAt")),
            updated_at=parse_datetime(node.get("updatedAt")),
            closed_at=parse_datetime(node.get("closedAt")),
        )


def _parse_field_value(node: dict[str, Any]) -> ProjectFieldValue | None:
    value_key = _FIELD_VALUE_KEYS.get(node.get("__typename", ""))
    field_ref = node.get("field") or {}
    if value_key is None or not field_ref.get("name"):
        return None
    raw = node.get(value_key)
    if raw is None:
        return None

    value: str | float | datetime
    if value_key == "number":
        value = float(raw)
    elif value_key == "date":
        value = _required_datetime(raw, "date")
    else:
        value = str(raw)
    return ProjectFieldValue(field_id=field_ref.get("id", ""), field_name=field_ref["name"], value=value)


def _parse_item_content(content: dict[str, Any]) -> ProjectItemContent | None:
    typename = content.get("__typename")
    if typename in _LINKABLE_KINDS:
        return LinkedResource(
            _LINKABLE_KINDS[typename],
            parse_repository_ref(content["repository"]),
            content["number"],
        )
    if typename == "DraftIssue":
        return DraftIssue(title=content.get("title") or "")
    return None


def parse_project_item(node: dict[str, Any]) -> ProjectResource | None:
    """Convert one project item; ``None`` when its content is not visible.

    Items backed by redacted or inaccessible content come back with a null
    ``content`` and are skipped.
    """
    with _decoding("project item"):
        content_node = node.get("content")
        content = _parse_item_content(content_node) if content_node else None
        if content is None:
            log.debug("project_item_skipped", item_id=node.get("id"))
            return None

        field_values = [
            value
            for value in (
                _parse_field_value(v) for v in (node.get("fieldValues") or {}).get("nodes") or [] if v
            )
            if value is not None
        ]
        state = content_node.get("state")
        return ProjectResource(
            item_id=node["id"],
            content=content,
            title=content_node.get("title"),
            author=_author(content_node),
            state=state.lower() if state else None,
            created_at=parse_datetime(content_node.get("createdAt")),
            updated_at=parse_datetime(content_node.get("updatedAt")),
            assignees=_logins(content_node.get("assignees")),
            labels=_names(content_node.get("labels")),
            field_values=field_values,
        )


def parse_pull_request_file(node: dict[str, Any]) -> PullRequestFile:
    with _decoding("pull request file"):
        return PullRequestFile(
            filename=node["path"],
            status=(node.get("changeType") or "CHANGED").lower(),
            additions=int(node.get("additions") or 0),
            deletions=int(node.get("deletions") or 0),
        )
