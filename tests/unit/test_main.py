"""Tests for github_insight.main CLI module."""

import json
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner
from graphql_nodes import issue_node
from structlog.testing import capture_logs

from github_insight.main import cli
from github_insight.providers.github_graphql import GitHubGraphQLClient


@pytest.fixture(autouse=True)
def captured_logs():
    """Keep log events out of the command output and make them inspectable."""
    with patch("github_insight.main.configure_logging"), capture_logs() as logs:
        yield logs


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


def mock_client(handler):
    """Patch client creation so commands talk to an httpx mock transport."""
    client = GitHubGraphQLClient(token="test-token", transport=httpx.MockTransport(handler))
    return patch.object(GitHubGraphQLClient, "from_settings", return_value=client)


def graphql_response(data):
    return httpx.Response(200, json={"data": data})


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "github-insight" in result.output
        for command in ("issues", "pull-requests", "pull-request-files", "repository", "project-items", "search"):
            assert command in result.output

    def test_cli_missing_config(self, cli_runner):
        result = cli_runner.invoke(cli, ["--config", "/nonexistent/file.yaml", "repository", "--repo", "a/b"])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_invalid_repository(self, cli_runner):
        """A malformed --repo value is a usage error."""
        result = cli_runner.invoke(cli, ["repository", "--repo", "not-a-repo"])

        assert result.exit_code == 2
        assert "OWNER/NAME" in result.output

    @pytest.mark.parametrize("log_format,json_output", [("json", True), ("console", False)])
    def test_log_format(self, cli_runner, log_format, json_output):
        with patch("github_insight.main.configure_logging") as configure, mock_client(
            lambda request: graphql_response({"repository": {"description": "Demo"}})
        ):
            result = cli_runner.invoke(
                cli, ["--log-level", "debug", "--log-format", log_format, "repository", "--repo", "octo/repo"]
            )

        assert result.exit_code == 0
        configure.assert_called_once_with("debug", json_output=json_output)

    def test_invalid_log_format(self, cli_runner):
        result = cli_runner.invoke(cli, ["--log-format", "xml", "repository", "--repo", "a/b"])

        assert result.exit_code == 2


class TestCommands:
    """Test commands end to end against a mock transport."""

    def test_issues(self, cli_runner):
        def handler(request):
            return graphql_response({"repository": {"issue0": issue_node(5, body="see github.com/a/b/issues/6")}})

        with mock_client(handler):
            result = cli_runner.invoke(cli, ["issues", "--repo", "octo/repo", "--number", "5"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        issue = payload["successes"]["octo/repo"][0]
        assert issue["number"] == 5
        assert issue["created_at"] == "2024-05-01T12:00:00+00:00"
        assert issue["linked_resources"][0]["number"] == 6
        assert payload["failures"] == {}

    def test_total_failure_exit_code(self, cli_runner, captured_logs):
        """All sources failing exits with status 1 but still prints the result."""

        def handler(request):
            return httpx.Response(401, json={"message": "Bad credentials"})

        with mock_client(handler):
            result = cli_runner.invoke(cli, ["repository", "--repo", "octo/repo"])

        assert result.exit_code == 1
        payload = json.loads(result.output)
        assert "Bad credentials" in payload["failures"]["octo/repo"]
        assert "source_fetch_failed" in [entry["event"] for entry in captured_logs]

    def test_partial_failure_exit_code(self, cli_runner):
        def handler(request):
            name = json.loads(request.content)["variables"]["name"]
            if name == "missing":
                return graphql_response({"repository": None})
            return graphql_response({"repository": {"description": "Demo"}})

        with mock_client(handler):
            result = cli_runner.invoke(cli, ["repository", "--repo", "octo/repo", "--repo", "octo/missing"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["successes"]["octo/repo"][0]["description"] == "Demo"
        assert "not found" in payload["failures"]["octo/missing"]

    def test_invalid_number(self, cli_runner):
        """Invalid numbers reject the whole request."""
        with mock_client(lambda request: graphql_response({})):
            result = cli_runner.invoke(cli, ["issues", "--repo", "octo/repo", "--number", "0"])

        assert result.exit_code == 1
        assert "Invalid resource numbers" in result.output

    def test_search_limit(self, cli_runner):
        def handler(request):
            variables = json.loads(request.content)["variables"]
            assert variables["query"] == "repo:octo/repo is:open"
            nodes = [issue_node(n) for n in (1, 2, 3)]
            return graphql_response({"search": {"nodes": nodes, "pageInfo": {"hasNextPage": False}}})

        with mock_client(handler):
            result = cli_runner.invoke(cli, ["search", "--repo", "octo/repo", "--query", "is:open", "--limit", "2"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert [hit["number"] for hit in payload["successes"]["octo/repo"]] == [1, 2]

    def test_pull_request_files(self, cli_runner):
        def handler(request):
            payload = json.loads(request.content)
            assert payload["operationName"] == "PullRequestFiles"
            assert payload["variables"]["number"] == 7
            files = {
                "nodes": [{"path": "src/app.py", "additions": 4, "deletions": 1, "changeType": "MODIFIED"}],
                "pageInfo": {"hasNextPage": False, "endCursor": None},
            }
            return graphql_response({"repository": {"pullRequest": {"files": files}}})

        with mock_client(handler):
            result = cli_runner.invoke(cli, ["pull-request-files", "--repo", "octo/repo", "--number", "7"])

        assert result.exit_code == 0
        entry = json.loads(result.output)["successes"]["octo/repo"][0]
        assert entry["number"] == 7
        assert entry["files"] == [{"filename": "src/app.py", "status": "modified", "additions": 4, "deletions": 1}]
