"""Tests for github_insight.graphql.queries."""

import pytest

from github_insight.graphql import queries
from github_insight.models.domain import RepositoryId


class TestMultiNumberQueries:
    """Test aliased multi-number query documents."""

    def test_issue_aliases(self):
        query = queries.multi_issue_query([4, 8])

        assert "query MultipleIssues($owner: String!, $name: String!)" in query
        assert "issue0: issue(number: 4)" in query
        assert "issue1: issue(number: 8)" in query
        assert "timelineItems" in query

    def test_pull_request_aliases(self):
        query = queries.multi_pull_request_query((15,))

        assert "pr0: pullRequest(number: 15)" in query
        assert "reviewRequests" in query

    def test_empty_numbers_rejected(self):
        with pytest.raises(ValueError):
            queries.multi_issue_query([])
        with pytest.raises(ValueError):
            queries.multi_pull_request_query([])


class TestProjectQueries:
    """Test owner-rooted project query documents."""

    @pytest.mark.parametrize("user,root", [(True, "user(login: $owner)"), (False, "organization(login: $owner)")])
    def test_owner_root(self, user, root):
        assert root in queries.project_items_query(user=user)
        assert root in queries.project_query(user=user)

    def test_items_paginate_with_cursor_variable(self):
        query = queries.project_items_query(user=False)

        assert "items(first: 100, after: $cursor)" in query
        assert "pageInfo" in query


def test_search_query_uses_variables():
    query = queries.search_query()

    assert "search(query: $query, type: ISSUE, first: $first, after: $cursor)" in query
    assert "endCursor" in query


@pytest.mark.parametrize(
    "query,expected",
    [
        ("", "repo:octo/repo is:issue is:pr"),
        ("is:open label:bug", "repo:octo/repo is:open label:bug"),
        ("repo:a/b repo:c/d crash", "repo:octo/repo crash"),
    ],
)
def test_normalize_repo_search_query(query, expected):
    assert queries.normalize_repo_search_query(query, RepositoryId("octo", "repo")) == expected


@pytest.mark.parametrize(
    "operation,document",
    [
        (queries.MULTIPLE_ISSUES_OPERATION, queries.multi_issue_query([1])),
        (queries.MULTIPLE_PULL_REQUESTS_OPERATION, queries.multi_pull_request_query([1])),
        (queries.REPOSITORY_OPERATION, queries.REPOSITORY_QUERY),
        (queries.SEARCH_OPERATION, queries.search_query()),
        (queries.PROJECT_OPERATION, queries.project_query(user=True)),
        (queries.PROJECT_ITEMS_OPERATION, queries.project_items_query(user=False)),
        (queries.PULL_REQUEST_FILES_OPERATION, queries.pull_request_files_query()),
    ],
)
def test_operation_names_declared_by_documents(operation, document):
    """Each operation name constant is the name its document declares."""
    assert f"query {operation}(" in document


def test_pull_request_files_query():
    query = queries.pull_request_files_query(page_size=50)

    assert "pullRequest(number: $number)" in query
    assert "files(first: 50, after: $cursor)" in query
    assert "changeType" in query
