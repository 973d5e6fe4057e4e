"""Tests for github_insight.graphql.parsers."""

from datetime import datetime, timezone

import pytest
from graphql_nodes import (
    TIMESTAMP,
    issue_node,
    link_target,
    pull_request_node,
    timeline_event,
)

from github_insight.exceptions import ResponseDecodeError
from github_insight.graphql.parsers import (
    UNKNOWN_AUTHOR,
    parse_aliased_nodes,
    parse_datetime,
    parse_issue,
    parse_project,
    parse_project_item,
    parse_pull_request,
    parse_pull_request_file,
    parse_repository,
    parse_search_node,
    parse_timeline_events,
)
from github_insight.models.domain import (
    DraftIssue,
    IssueState,
    LinkedResource,
    ProjectId,
    PullRequestFile,
    PullRequestState,
    RepositoryId,
    ResourceKind,
    TimelineEventKind,
)


class TestParseIssue:
    """Test issue node conversion."""

    def test_basic_fields(self):
        issue = parse_issue(issue_node(42, body="Crash on start", comments=["+1"]))

        assert issue.repository == RepositoryId("octo", "repo")
        assert issue.number == 42
        assert issue.title == "Issue 42"
        assert issue.body == "Crash on start"
        assert issue.state == IssueState.OPEN
        assert issue.author == "alice"
        assert issue.created_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert issue.assignees == ["bob"]
        assert issue.labels == ["bug"]
        assert issue.milestone_number == 2
        assert issue.comments_count == 1
        assert issue.comments[0].author == "carol"
        assert issue.comments[0].body == "+1"

    def test_linked_resources_from_timeline_and_comments(self):
        """Events and comment URLs both feed linked_resources."""
        node = issue_node(
            1,
            body="",
            comments=["duplicate of https://github.com/other/proj/issues/3"],
            events=[timeline_event("ConnectedEvent", link_target("PullRequest", 8))],
        )

        issue = parse_issue(node)

        assert issue.linked_resources == [
            LinkedResource.pull_request("octo", "repo", 8),
            LinkedResource.issue("other", "proj", 3),
        ]

    def test_deleted_author(self):
        issue = parse_issue(issue_node(1, author=None))

        assert issue.author == UNKNOWN_AUTHOR

    def test_empty_body_is_none(self):
        assert parse_issue(issue_node(1, body="")).body is None

    def test_closed_state(self):
        issue = parse_issue(issue_node(1, state="CLOSED", closedAt="2024-05-02T08:00:00Z"))

        assert issue.state == IssueState.CLOSED
        assert issue.closed_at == datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)

    def test_explicit_repository_wins(self):
        issue = parse_issue(issue_node(1), repository=RepositoryId("fork", "repo"))

        assert issue.repository == RepositoryId("fork", "repo")

    def test_missing_title_raises_decode_error(self):
        node = issue_node(1)
        del node["title"]

        with pytest.raises(ResponseDecodeError, match="issue"):
            parse_issue(node)

    def test_unknown_state_raises_decode_error(self):
        with pytest.raises(ResponseDecodeError):
            parse_issue(issue_node(1, state="PINNED"))


class TestParsePullRequest:
    """Test pull request node conversion."""

    def test_fields_and_reviewers(self):
        pull_request = parse_pull_request(pull_request_node(7, state="MERGED", mergedAt=TIMESTAMP))

        assert pull_request.number == 7
        assert pull_request.state == PullRequestState.MERGED
        assert pull_request.merged_at is not None
        assert pull_request.base_branch == "main"
        assert pull_request.head_branch == "feature-7"
        assert pull_request.additions == 10
        assert pull_request.changed_files == 3
        assert pull_request.reviewers == ["dave", "core"]

    def test_closing_reference_in_body(self):
        pull_request = parse_pull_request(pull_request_node(7, body="Fixes https://github.com/octo/repo/issues/1"))

        assert pull_request.linked_resources == [LinkedResource.issue("octo", "repo", 1)]
        assert pull_request.link.kind == ResourceKind.PULL_REQUEST


class TestParseTimelineEvents:
    """Test timeline event extraction."""

    def test_event_kinds(self):
        node = issue_node(
            events=[
                timeline_event("CrossReferencedEvent", link_target("Issue", 2)),
                timeline_event("ConnectedEvent", link_target("PullRequest", 3)),
                timeline_event("DisconnectedEvent", link_target("PullRequest", 3)),
                {"__typename": "LabeledEvent", "createdAt": TIMESTAMP},
            ]
        )

        events = parse_timeline_events(node)

        assert [event.kind for event in events] == [
            TimelineEventKind.CROSS_REFERENCED,
            TimelineEventKind.CONNECTED,
            TimelineEventKind.DISCONNECTED,
        ]
        assert events[0].subject == LinkedResource.issue("octo", "repo", 2)

    def test_unlinkable_subject_kept_as_none(self):
        node = issue_node(events=[timeline_event("ConnectedEvent", {})])

        events = parse_timeline_events(node)

        assert len(events) == 1
        assert events[0].subject is None

    def test_invalid_timestamp(self):
        node = issue_node(events=[timeline_event("ConnectedEvent", link_target("Issue", 2), created_at="yesterday")])

        assert parse_timeline_events(node)[0].created_at is None


class TestParseAliasedNodes:
    """Test multi-number alias decoding."""

    def test_null_aliases_skipped(self):
        container = {"issue0": issue_node(1), "issue1": None, "issue2": issue_node(3)}

        result = list(parse_aliased_nodes(container, "issue", [1, 2, 3]))

        assert [number for number, _ in result] == [1, 3]

    def test_missing_container(self):
        assert list(parse_aliased_nodes(None, "issue", [1])) == []


class TestParseProjectItem:
    """Test project item conversion."""

    def item(self, content, field_values=None):
        return {"id": "PVTI_1", "content": content, "fieldValues": {"nodes": field_values or []}}

    def test_issue_item_with_field_values(self):
        content = dict(link_target("Issue", 5), author={"login": "alice"}, createdAt=TIMESTAMP)
        field_values = [
            {
                "__typename": "ProjectV2ItemFieldSingleSelectValue",
                "name": "In Progress",
                "field": {"id": "F1", "name": "Status"},
            },
            {"__typename": "ProjectV2ItemFieldNumberValue", "number": 3, "field": {"id": "F2", "name": "Points"}},
            {"__typename": "ProjectV2ItemFieldDateValue", "date": "2024-06-01", "field": {"id": "F3", "name": "Due"}},
            {"__typename": "ProjectV2ItemFieldLabelValue", "field": {"id": "F4", "name": "Labels"}},
            {},
        ]

        resource = parse_project_item(self.item(content, field_values))

        assert resource.item_id == "PVTI_1"
        assert resource.content == LinkedResource.issue("octo", "repo", 5)
        assert resource.author == "alice"
        assert resource.state == "open"
        assert resource.column_name == "In Progress"
        assert [value.field_name for value in resource.field_values] == ["Status", "Points", "Due"]
        assert resource.field_values[1].value == 3.0
        assert resource.field_values[2].value == datetime(2024, 6, 1)

    def test_draft_issue(self):
        resource = parse_project_item(self.item({"__typename": "DraftIssue", "title": "Idea"}))

        assert resource.content == DraftIssue(title="Idea")
        assert resource.state is None
        assert resource.column_name is None

    def test_null_content_skipped(self):
        assert parse_project_item(self.item(None)) is None

    def test_unknown_content_skipped(self):
        assert parse_project_item(self.item({"__typename": "Discussion"})) is None

    def test_missing_id_raises(self):
        node = self.item({"__typename": "DraftIssue", "title": "Idea"})
        del node["id"]

        with pytest.raises(ResponseDecodeError):
            parse_project_item(node)


def test_parse_search_node():
    """Issues and pull requests are converted, other types are dropped."""
    assert parse_search_node(issue_node(1)).number == 1
    assert parse_search_node(pull_request_node(2)).state == PullRequestState.OPEN
    assert parse_search_node({"__typename": "Discussion"}) is None


def test_parse_repository():
    node = {
        "url": "https://github.com/octo/repo",
        "description": "Demo",
        "primaryLanguage": {"name": "Python"},
        "defaultBranchRef": {"name": "main"},
        "createdAt": TIMESTAMP,
        "updatedAt": TIMESTAMP,
        "labels": {"nodes": [{"name": "bug"}, {"name": "docs"}]},
        "milestones": {"nodes": [{"number": 1, "title": "v1", "state": "OPEN", "dueOn": None}]},
    }

    repository = parse_repository(node, RepositoryId("octo", "repo"))

    assert repository.language == "Python"
    assert repository.default_branch == "main"
    assert repository.labels == ["bug", "docs"]
    assert repository.milestones[0].title == "v1"
    assert repository.milestones[0].state == "open"


def test_parse_project():
    project_id = ProjectId("octo", 5)

    project = parse_project({"title": "Roadmap", "public": True}, project_id)

    assert project.title == "Roadmap"
    assert project.public is True
    assert project.url == "https://github.com/orgs/octo/projects/5"


def test_parse_pull_request_file():
    node = {"path": "docs/readme.md", "additions": 3, "deletions": 2, "changeType": "RENAMED"}

    changed = parse_pull_request_file(node)

    assert changed == PullRequestFile(filename="docs/readme.md", status="renamed", additions=3, deletions=2)
    assert changed.changes == 5


def test_parse_pull_request_file_without_path():
    with pytest.raises(ResponseDecodeError, match="pull request file"):
        parse_pull_request_file({"additions": 1})


def test_parse_datetime():
    assert parse_datetime(None) is None
    assert parse_datetime("2024-05-01T12:00:00Z") == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
