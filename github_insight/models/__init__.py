"""Domain models for github-insight."""

from github_insight.models.domain import (
    Comment,
    CrossReferenceEvidence,
    Cursor,
    DraftIssue,
    FetchRequest,
    Issue,
    IssueState,
    LinkedResource,
    Milestone,
    PageResult,
    Project,
    ProjectFieldValue,
    ProjectId,
    ProjectItemContent,
    ProjectResource,
    ProjectType,
    PullRequest,
    PullRequestState,
    Repository,
    RepositoryId,
    ResourceKind,
    SearchHit,
    SourceId,
    TimelineEvent,
    TimelineEventKind,
)

__all__ = [
    "Comment",
    "CrossReferenceEvidence",
    "Cursor",
    "DraftIssue",
    "FetchRequest",
    "Issue",
    "IssueState",
    "LinkedResource",
    "Milestone",
    "PageResult",
    "Project",
    "ProjectFieldValue",
    "ProjectId",
    "ProjectItemContent",
    "ProjectResource",
    "ProjectType",
    "PullRequest",
    "PullRequestState",
    "Repository",
    "RepositoryId",
    "ResourceKind",
    "SearchHit",
    "SourceId",
    "TimelineEvent",
    "TimelineEventKind",
]
