"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for the GitHub endpoint, the
retry policy and the fan-out limits of the fetch engine. Settings come from
a YAML file (with ``${VAR}`` interpolation) and/or ``GITHUB_INSIGHT_*``
environment variables.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from github_insight.exceptions import ConfigurationError


class GitHubConfig(BaseModel):
    """GitHub GraphQL endpoint configuration.

    The token supports environment references in YAML:
    - token: "${GITHUB_TOKEN}"
    """

    api_url: str = Field(default="https://api.github.com/graphql", description="GraphQL endpoint URL")
    token: SecretStr | None = Field(default=None, description="GitHub token used as bearer token")
    request_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for a single page call")


class RetryConfig(BaseModel):
    """Retry policy for page calls."""

    max_attempts: int = Field(default=15, ge=1, description="Maximum calls per page, including the first")
    rate_limit_base: float = Field(default=1.0, ge=0, description="Base backoff in seconds after a rate limit")
    retry_base: float = Field(default=0.5, ge=0, description="Base backoff in seconds after a transient error")
    max_delay: float = Field(default=60.0, gt=0, description="Upper bound for a single backoff sleep")

    @model_validator(mode="after")
    def validate_backoff_bases(self) -> RetryConfig:
        """Rate-limit windows are longer than transient blips."""
        if self.rate_limit_base < self.retry_base:
            raise ValueError("rate_limit_base must not be smaller than retry_base")
        return self


class ConcurrencyConfig(BaseModel):
    """Fan-out limits."""

    max_concurrency: int = Field(default=10, ge=1, le=100, description="Maximum sources fetched at once")
    number_chunk_size: int = Field(
        default=30, ge=1, le=100, description="Issue or pull request numbers per multi-number query"
    )
    search_page_size: int = Field(default=30, ge=1, le=100, description="Results per search page")


class FetchSettings(BaseSettings):
    """Main fetch engine settings.

    This class combines all configuration sections and provides methods
    for loading from YAML files with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="GITHUB_INSIGHT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)

    @classmethod
    def from_yaml(cls, config_path: str) -> FetchSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            FetchSettings instance

        Raises:
            ConfigurationError: If config file is invalid or has invalid fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except TypeError as e:
            raise ConfigurationError(f"Missing or invalid configuration fields: {e}") from e
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            if default_value is not None:
                return default_value
            raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
