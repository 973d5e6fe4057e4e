"""Pytest configuration and shared fixtures."""

from unittest.mock import AsyncMock

import pytest

from github_insight.models.domain import RepositoryId
from github_insight.utils.retry import RetryExecutor, RetryPolicy


@pytest.fixture
def sleep_mock() -> AsyncMock:
    """Backoff sleep that returns immediately and records delays."""
    return AsyncMock()


@pytest.fixture
def retry_executor(sleep_mock: AsyncMock) -> RetryExecutor:
    """Retry executor with a short attempt budget and no real sleeping."""
    return RetryExecutor(RetryPolicy(max_attempts=3), sleep=sleep_mock)


@pytest.fixture
def repo_a() -> RepositoryId:
    return RepositoryId("octo", "alpha")


@pytest.fixture
def repo_b() -> RepositoryId:
    return RepositoryId("octo", "beta")
