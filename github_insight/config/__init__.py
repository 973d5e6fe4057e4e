"""Configuration for the fetch engine."""

from github_insight.config.settings import FetchSettings

__all__ = ["FetchSettings"]
