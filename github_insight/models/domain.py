"""
Domain models for the fetch engine.

This module contains the data classes and enums representing source
identities, pagination state, cross-reference links and the normalized
GitHub resources (issues, pull requests, repositories, projects) returned
by the engine. They are converted from raw GraphQL response nodes in
``github_insight.graphql.parsers``.

Heterogeneous node shapes are modelled as closed unions of small
dataclasses (``SourceId``, ``ProjectItemContent``, ``SearchHit``) and matched
exhaustively with ``isinstance`` at the conversion boundary.

Example:
    Identifying sources for a batch fetch::

        sources = [
            RepositoryId("rust-lang", "rust"),
            ProjectId("octo-org", 5, ProjectType.ORGANIZATION),
        ]
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from github_insight.exceptions import PaginationError

GITHUB_WEB_URL = "https://github.com"

T = TypeVar("T")


class ResourceKind(str, Enum):
    """Kind of a linkable GitHub resource."""

    ISSUE = "issue"
    PULL_REQUEST = "pull_request"

    @property
    def url_segment(self) -> str:
        """Path segment used in web URLs (``issues`` or ``pull``)."""
        return "issues" if self == ResourceKind.ISSUE else "pull"


class ProjectType(str, Enum):
    """Owner type of a GitHub project (ProjectV2).

    The owner type decides which GraphQL root field (``user`` or
    ``organization``) the project query is issued against.
    """

    USER = "user"
    ORGANIZATION = "organization"


class IssueState(str, Enum):
    """State of an issue as reported by the GraphQL API."""

    OPEN = "open"
    CLOSED = "closed"


class PullRequestState(str, Enum):
    """State of a pull request as reported by the GraphQL API."""

    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class TimelineEventKind(str, Enum):
    """Relationship events that carry cross-reference evidence."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CROSS_REFERENCED = "cross_referenced"


# =============================================================================
# Source identities and pagination state
# =============================================================================


@dataclass(frozen=True, order=True)
class RepositoryId:
    """Identity of a repository source (owner + name)."""

    owner: str
    """Login of the user or organization owning the repository."""

    name: str
    """Repository name without the owner prefix."""

    @property
    def full_name(self) -> str:
        """Return ``owner/name``."""
        return f"{self.owner}/{self.name}"

    @property
    def url(self) -> str:
        """Web URL of the repository."""
        return f"{GITHUB_WEB_URL}/{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True, order=True)
class ProjectId:
    """Identity of a project source (owner + project number).

    ``project_type`` is only a hint for which query shape to try first;
    the paginated fetcher falls back to the other shape when it fails.
    """

    owner: str
    """Login of the user or organization owning the project."""

    number: int
    """Project number as shown in the project URL."""

    project_type: ProjectType = ProjectType.ORGANIZATION
    """Expected owner type of the project."""

    @property
    def url(self) -> str:
        """Web URL of the project."""
        segment = "users" if self.project_type == ProjectType.USER else "orgs"
        return f"{GITHUB_WEB_URL}/{segment}/{self.owner}/projects/{self.number}"

    def __str__(self) -> str:
        return self.url


SourceId = RepositoryId | ProjectId
"""Identity of one independent upstream collection being fetched."""


@dataclass(frozen=True)
class Cursor:
    """Opaque pagination continuation token. Only equality is meaningful."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class FetchRequest:
    """A request for one page of one source.

    Requests are immutable; advancing pagination produces a new request via
    ``with_cursor``.
    """

    source: SourceId
    """Source the request targets."""

    query: str = ""
    """GraphQL query text, or a search query string for search requests."""

    numbers: tuple[int, ...] = ()
    """Issue or pull request numbers for number-addressed requests."""

    variables: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    """Extra GraphQL variables."""

    cursor: Cursor | None = None
    """Cursor of the page to fetch, ``None`` for the first page."""

    def with_cursor(self, cursor: Cursor | None) -> "FetchRequest":
        """Return a copy of this request targeting the page after ``cursor``."""
        return dataclasses.replace(self, cursor=cursor)


@dataclass
class PageResult(Generic[T]):
    """One page of results from a single source.

    Invariant: ``has_more`` is False exactly when ``next_cursor`` is None.
    Pages violating it are rejected with ``PaginationError``.
    """

    items: list[T]
    next_cursor: Cursor | None = None
    has_more: bool = False

    def __post_init__(self) -> None:
        if self.has_more and self.next_cursor is None:
            raise PaginationError("Page reports more results but carries no cursor")
        if not self.has_more and self.next_cursor is not None:
            raise PaginationError("Page carries a cursor but reports no more results")

    @classmethod
    def from_page_info(cls, items: list[T], page_info: dict[str, Any] | None) -> "PageResult[T]":
        """Build a page from a GraphQL ``pageInfo`` object.

        A missing ``pageInfo`` means a single page. A ``hasNextPage`` of true
        with a null ``endCursor`` raises ``PaginationError``.
        """
        if not page_info or not page_info.get("hasNextPage"):
            return cls(items=items)
        end_cursor = page_info.get("endCursor")
        return cls(
            items=items,
            next_cursor=Cursor(end_cursor) if end_cursor else None,
            has_more=True,
        )


# =============================================================================
# Cross references
# =============================================================================


@dataclass(frozen=True)
class LinkedResource:
    """A cross-reference from one issue or pull request to another.

    Equality is by ``(kind, repository, number)`` no matter which channel
    (timeline event or free text) discovered the link.
    """

    kind: ResourceKind
    repository: RepositoryId
    number: int

    @classmethod
    def issue(cls, owner: str, name: str, number: int) -> "LinkedResource":
        return cls(ResourceKind.ISSUE, RepositoryId(owner, name), number)

    @classmethod
    def pull_request(cls, owner: str, name: str, number: int) -> "LinkedResource":
        return cls(ResourceKind.PULL_REQUEST, RepositoryId(owner, name), number)

    @property
    def url(self) -> str:
        """Web URL of the linked resource."""
        return f"{self.repository.url}/{self.kind.url_segment}/{self.number}"

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class TimelineEvent:
    """A relationship event from an issue or pull request timeline."""

    kind: TimelineEventKind
    created_at: datetime | None = None
    subject: LinkedResource | None = None
    """Resource the event connects or disconnects. ``None`` when the API
    returned a subject type that cannot be linked."""


@dataclass
class CrossReferenceEvidence:
    """Everything the cross-reference resolver looks at for one resource."""

    events: list[TimelineEvent] = field(default_factory=list)
    """Explicit channel: connect, disconnect and cross-reference events."""

    texts: list[str] = field(default_factory=list)
    """Incidental channel: the body followed by every comment body."""


# =============================================================================
# Resources
# =============================================================================


@dataclass
class Comment:
    """A comment on an issue or pull request."""

    body: str
    """Comment content in markdown format."""

    author: str | None
    """Login of the comment author; ``None`` for deleted accounts."""

    created_at: datetime
    """Timestamp when the comment was posted."""

    updated_at: datetime | None = None
    """Timestamp of the last edit."""

    url: str = ""
    """Web URL of the comment."""


@dataclass
class Issue:
    """A GitHub issue with comments and resolved cross-references.

    Example:
        Listing the pull requests an issue links to::

            prs = [
                link for link in issue.linked_resources
                if link.kind == ResourceKind.PULL_REQUEST
            ]
    """

    repository: RepositoryId
    """Repository the issue belongs to."""

    number: int
    """Issue number, stable across API versions."""

    title: str
    """Issue title."""

    body: str | None
    """Issue description in markdown format, ``None`` when empty."""

    state: IssueState
    """Current state of the issue."""

    author: str
    """Login of the issue creator (``"Unknown"`` for deleted accounts)."""

    created_at: datetime
    """Timestamp when the issue was created."""

    updated_at: datetime
    """Timestamp of the most recent update."""

    url: str = ""
    """Web URL of the issue."""

    closed_at: datetime | None = None
    """Timestamp when the issue was closed, if closed."""

    assignees: list[str] = field(default_factory=list)
    """Logins of the assignees."""

    labels: list[str] = field(default_factory=list)
    """Names of the attached labels."""

    comments: list[Comment] = field(default_factory=list)
    """Comments fetched with the issue (bounded by the query limit)."""

    comments_count: int = 0
    """Total number of comments, including ones not fetched."""

    milestone_number: int | None = None
    """Number of the milestone the issue belongs to."""

    locked: bool = False
    """Whether the conversation is locked."""

    linked_resources: list[LinkedResource] = field(default_factory=list)
    """Cross-references resolved from timeline events and free text."""

    @property
    def link(self) -> LinkedResource:
        """This issue as a ``LinkedResource``."""
        return LinkedResource(ResourceKind.ISSUE, self.repository, self.number)


@dataclass
class PullRequest:
    """A GitHub pull request with comments and resolved cross-references."""

    repository: RepositoryId
    """Repository the pull request belongs to."""

    number: int
    """Pull request number."""

    title: str
    """Pull request title."""

    body: str | None
    """Pull request description in markdown format."""

    state: PullRequestState
    """Current state of the pull request."""

    author: str
    """Login of the pull request author."""

    created_at: datetime
    """Timestamp when the pull request was opened."""

    updated_at: datetime
    """Timestamp of the most recent update."""

    url: str = ""
    """Web URL of the pull request."""

    base_branch: str = ""
    """Branch the pull request merges into."""

    head_branch: str = ""
    """Branch containing the changes."""

    closed_at: datetime | None = None
    merged_at: datetime | None = None

    is_draft: bool = False
    """Whether the pull request is still a draft."""

    additions: int = 0
    deletions: int = 0
    changed_files: int = 0

    assignees: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)
    """Logins of users whose review was requested."""

    labels: list[str] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    comments_count: int = 0

    linked_resources: list[LinkedResource] = field(default_factory=list)
    """Cross-references resolved from timeline events and free text."""

    @property
    def link(self) -> LinkedResource:
        """This pull request as a ``LinkedResource``."""
        return LinkedResource(ResourceKind.PULL_REQUEST, self.repository, self.number)


SearchHit = Issue | PullRequest
"""A search result node: either an issue or a pull request."""


@dataclass(frozen=True)
class PullRequestFile:
    """Line statistics of one file changed by a pull request."""

    filename: str
    status: str
    """Lower-cased change type (``added``, ``modified``, ``renamed``, ...)."""

    additions: int = 0
    deletions: int = 0

    @property
    def changes(self) -> int:
        return self.additions + self.deletions


@dataclass
class PullRequestFiles:
    """Every file changed by one pull request."""

    number: int
    files: list[PullRequestFile] = field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def deletions(self) -> int:
        return sum(f.deletions for f in self.files)


@dataclass
class Milestone:
    """A repository milestone."""

    number: int
    title: str
    state: str = "open"
    description: str | None = None
    due_on: datetime | None = None


@dataclass
class Repository:
    """Repository metadata together with its labels and milestones."""

    repository_id: RepositoryId
    """Identity of the repository."""

    url: str
    """Web URL of the repository."""

    description: str | None = None
    """Short description shown on the repository page."""

    language: str | None = None
    """Primary language as detected by GitHub."""

    default_branch: str | None = None
    """Name of the default branch, ``None`` for empty repositories."""

    created_at: datetime | None = None
    updated_at: datetime | None = None

    labels: list[str] = field(default_factory=list)
    """Names of the labels defined in the repository."""

    milestones: list[Milestone] = field(default_factory=list)
    """Milestones defined in the repository."""


@dataclass(frozen=True)
class DraftIssue:
    """Marker for a project item backed by a draft issue (exists only in the project)."""

    title: str = ""


ProjectItemContent = LinkedResource | DraftIssue
"""What a project item points at: an issue, a pull request, or a draft."""


@dataclass
class ProjectFieldValue:
    """Value of one custom project field on one item."""

    field_id: str
    field_name: str
    value: str | float | datetime
    """Text, single-select option name, number, or date."""


@dataclass
class ProjectResource:
    """An item of a GitHub project."""

    item_id: str
    """Node ID of the project item."""

    content: ProjectItemContent
    """Issue, pull request or draft issue the item represents."""

    title: str | None = None
    author: str | None = None
    state: str | None = None
    """Raw state of the underlying issue or PR (``None`` for drafts)."""

    created_at: datetime | None = None
    updated_at: datetime | None = None
    assignees: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)

    field_values: list[ProjectFieldValue] = field(default_factory=list)
    """Custom field values set on the item."""

    @property
    def column_name(self) -> str | None:
        """Value of the ``Status`` single-select field, if set."""
        for value in self.field_values:
            if value.field_name.lower() == "status" and isinstance(value.value, str):
                return value.value
        return None


@dataclass
class Project:
    """Project metadata (items are fetched separately with pagination)."""

    project_id: ProjectId
    title: str
    url: str
    description: str | None = None
    readme: str | None = None
    closed: bool = False
    public: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
