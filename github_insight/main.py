"""CLI entry point for the fetch engine."""

import asyncio
import dataclasses
import json
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import click

from github_insight.config.settings import FetchSettings
from github_insight.engine.parallel_executor import AggregatedResult
from github_insight.exceptions import ConfigurationError, GitHubInsightError
from github_insight.models.domain import ProjectId, ProjectType, RepositoryId
from github_insight.providers.github_graphql import GitHubGraphQLClient
from github_insight.services.fetch import MultiResourceFetcher
from github_insight.utils.logging_config import configure_logging, get_logger

log = get_logger(__name__)


def _parse_repositories(ctx: click.Context, param: click.Parameter, values: tuple[str, ...]) -> list[RepositoryId]:
    repositories = []
    for value in values:
        owner, _, name = value.strip().partition("/")
        if not owner or not name or "/" in name:
            raise click.BadParameter(f"expected OWNER/NAME, got {value!r}")
        repositories.append(RepositoryId(owner, name))
    return repositories


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def render_result(result: AggregatedResult) -> str:
    """Render an aggregated result as JSON (items per source and failure reasons)."""
    payload = {
        "successes": {
            str(source): [dataclasses.asdict(item) for item in items] for source, items in result.successes.items()
        },
        "failures": {str(source): str(error) for source, error in result.failures.items()},
    }
    return json.dumps(payload, indent=2, default=_json_default)


def _run(
    ctx: click.Context,
    name: str,
    operation: Callable[[MultiResourceFetcher], Awaitable[AggregatedResult]],
) -> None:
    """Run one fetch command, print its result and exit non-zero on total failure."""
    settings: FetchSettings = ctx.obj["settings"]

    async def run() -> AggregatedResult:
        client = GitHubGraphQLClient.from_settings(settings)
        async with client:
            return await operation(MultiResourceFetcher.from_settings(settings, client))

    try:
        result = asyncio.run(run())
    except GitHubInsightError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(f"{name}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)

    click.echo(render_result(result))
    if result.is_total_failure:
        sys.exit(1)


@click.group()
@click.option("--config", default=None, help="Path to configuration file")
@click.option("--log-level", default="WARNING", help="Logging level")
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default="json",
    help="Render log events (on stderr) as JSON lines or for the console",
)
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str, log_format: str) -> None:
    """github-insight: Fetch GitHub issues, pull requests and projects across many sources."""
    configure_logging(log_level, json_output=log_format == "json")

    try:
        settings = FetchSettings.from_yaml(config) if config else FetchSettings()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error loading configuration: {e}", err=True)
        log.error("config_error_unexpected", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


repo_option = click.option(
    "--repo",
    "repositories",
    multiple=True,
    required=True,
    callback=_parse_repositories,
    help="Repository as OWNER/NAME (repeatable)",
)


@cli.command()
@repo_option
@click.option("--number", "numbers", type=int, multiple=True, required=True, help="Issue number (repeatable)")
@click.pass_context
def issues(ctx: click.Context, repositories: list[RepositoryId], numbers: tuple[int, ...]) -> None:
    """Fetch issues by number from each repository."""
    _run(ctx, "issues", lambda fetcher: fetcher.fetch_issues({repo: numbers for repo in repositories}))


@cli.command("pull-requests")
@repo_option
@click.option("--number", "numbers", type=int, multiple=True, required=True, help="Pull request number (repeatable)")
@click.pass_context
def pull_requests(ctx: click.Context, repositories: list[RepositoryId], numbers: tuple[int, ...]) -> None:
    """Fetch pull requests by number from each repository."""
    _run(ctx, "pull_requests", lambda fetcher: fetcher.fetch_pull_requests({repo: numbers for repo in repositories}))


@cli.command("pull-request-files")
@repo_option
@click.option("--number", "numbers", type=int, multiple=True, required=True, help="Pull request number (repeatable)")
@click.pass_context
def pull_request_files(ctx: click.Context, repositories: list[RepositoryId], numbers: tuple[int, ...]) -> None:
    """Fetch per-file change statistics of pull requests."""
    _run(
        ctx,
        "pull_request_files",
        lambda fetcher: fetcher.fetch_pull_request_files({repo: numbers for repo in repositories}),
    )


@cli.command()
@repo_option
@click.pass_context
def repository(ctx: click.Context, repositories: list[RepositoryId]) -> None:
    """Fetch repository metadata, labels and milestones."""
    _run(ctx, "repository", lambda fetcher: fetcher.fetch_repositories(repositories))


project_options = [
    click.option("--owner", required=True, help="Login of the project owner"),
    click.option("--number", "numbers", type=int, multiple=True, required=True, help="Project number (repeatable)"),
    click.option("--user/--org", "is_user", default=False, help="Owner type to try first"),
]


def _project_ids(owner: str, numbers: tuple[int, ...], is_user: bool) -> list[ProjectId]:
    project_type = ProjectType.USER if is_user else ProjectType.ORGANIZATION
    return [ProjectId(owner, number, project_type) for number in numbers]


def _with_project_options(func: Callable[..., None]) -> Callable[..., None]:
    for option in reversed(project_options):
        func = option(func)
    return func


@cli.command()
@_with_project_options
@click.pass_context
def project(ctx: click.Context, owner: str, numbers: tuple[int, ...], is_user: bool) -> None:
    """Fetch project metadata."""
    _run(ctx, "project", lambda fetcher: fetcher.fetch_projects(_project_ids(owner, numbers, is_user)))


@cli.command("project-items")
@_with_project_options
@click.pass_context
def project_items(ctx: click.Context, owner: str, numbers: tuple[int, ...], is_user: bool) -> None:
    """Fetch every item of each project."""
    _run(
        ctx,
        "project_items",
        lambda fetcher: fetcher.fetch_project_resources(_project_ids(owner, numbers, is_user)),
    )


@cli.command()
@repo_option
@click.option("--query", default="", help="GitHub search query (repo: qualifiers are replaced)")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Maximum results per repository")
@click.pass_context
def search(ctx: click.Context, repositories: list[RepositoryId], query: str, limit: int | None) -> None:
    """Search issues and pull requests in each repository."""
    _run(ctx, "search", lambda fetcher: fetcher.search_resources(repositories, query, max_results=limit))


if __name__ == "__main__":
    cli()
