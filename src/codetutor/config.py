"""Configuration management for Codetutor.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to CodetutorConfig constructor)
2. Environment variables (CODETUTOR_* prefix)
3. TOML configuration file
4. Default values defined in this module

Example TOML configuration:
    [repository]
    full_name = "acme/payments"

    [generation]
    model = "llama3.1"
    timeout_seconds = 90

Example environment variable override:
    CODETUTOR_REPOSITORY__FULL_NAME="acme/payments"
    CODETUTOR_REVIEW__USE_LLM_ROUTING=true
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Categories that have a dedicated analyzer.
SUPPORTED_CATEGORIES: tuple[str, ...] = ("naming", "structure", "pattern", "testing")


class ConfigurationError(Exception):
    """Raised when a required configuration value is missing or unusable."""

    pass


class RepositoryNotConfiguredError(ConfigurationError):
    """Raised when conventions must be loaded but no repository is configured."""

    def __init__(self) -> None:
        super().__init__(
            "No repository configured: set repository.full_name "
            "(CODETUTOR_REPOSITORY__FULL_NAME) to load conventions"
        )


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stderr only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="CODETUTOR_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=50, ge=1, le=1000)
    retention_count: int = Field(default=10, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class GenerationConfig(BaseSettings):
    """Text generation backend configuration.

    Attributes:
        url: Base URL of the Ollama-compatible generation server
        model: Model name passed to the backend
        temperature: Sampling temperature
        timeout_seconds: Upper bound for a single generation call
        max_retries: Retry attempts on timeouts and 5xx responses
    """

    model_config = SettingsConfigDict(
        env_prefix="CODETUTOR_GENERATION__",
        extra="forbid",
    )

    url: str = Field(default="http://localhost:11434")
    model: str = Field(default="llama3.1")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    timeout_seconds: int = Field(default=120, ge=1, le=600)
    max_retries: int = Field(default=2, ge=0, le=10)


class RepositoryConfig(BaseSettings):
    """Repository under review.

    Attributes:
        full_name: Repository identifier in ``owner/repo`` form. Empty means
            the repository is not configured.
    """

    model_config = SettingsConfigDict(
        env_prefix="CODETUTOR_REPOSITORY__",
        extra="forbid",
    )

    full_name: str = Field(default="")


class KnowledgeConfig(BaseSettings):
    """Knowledge store configuration.

    Attributes:
        path: Directory holding per-repository convention files
    """

    model_config = SettingsConfigDict(
        env_prefix="CODETUTOR_KNOWLEDGE__",
        extra="forbid",
    )

    path: Path = Field(default=Path("./data/knowledge"))


class GitHubConfig(BaseSettings):
    """GitHub API configuration.

    Attributes:
        api_url: REST API base URL
        token: Access token used for fetching diffs and posting reviews
        timeout_seconds: HTTP request timeout in seconds
    """

    model_config = SettingsConfigDict(
        env_prefix="CODETUTOR_GITHUB__",
        extra="forbid",
    )

    api_url: str = Field(default="https://api.github.com")
    token: str = Field(default="")
    timeout_seconds: int = Field(default=30, ge=1, le=300)


class ReviewConfig(BaseSettings):
    """Review pipeline configuration.

    Attributes:
        categories: Analyzer categories run on each file
        use_llm_routing: Ask the generation backend for a per-file routing plan
        summary_sample_size: Number of comments sampled into the summary prompt
        explanation_max_sentences: Sentence cap applied to generated explanations
        format_concurrency: Maximum concurrent comment-formatting calls
    """

    model_config = SettingsConfigDict(
        env_prefix="CODETUTOR_REVIEW__",
        extra="forbid",
    )

    categories: list[str] = Field(default_factory=lambda: list(SUPPORTED_CATEGORIES))
    use_llm_routing: bool = Field(default=False)
    summary_sample_size: int = Field(default=10, ge=1, le=100)
    explanation_max_sentences: int = Field(default=5, ge=1, le=20)
    format_concurrency: int = Field(default=4, ge=1, le=32)

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: list[str]) -> list[str]:
        """Validate that every category has an analyzer."""
        normalized = [c.lower() for c in v]
        unknown = [c for c in normalized if c not in SUPPORTED_CATEGORIES]
        if unknown:
            raise ValueError(
                f"Unknown review categories: {unknown}. "
                f"Must be drawn from {list(SUPPORTED_CATEGORIES)}"
            )
        return normalized


class CodetutorConfig(BaseSettings):
    """Root configuration for Codetutor.

    Environment variable format for nested config:
        CODETUTOR_<SECTION>__<KEY>=value

    Example:
        CODETUTOR_GENERATION__MODEL="qwen2.5-coder"
        CODETUTOR_REPOSITORY__FULL_NAME="acme/payments"
    """

    model_config = SettingsConfigDict(
        env_prefix="CODETUTOR_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    knowledge: KnowledgeConfig = Field(default_factory=KnowledgeConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None) -> CodetutorConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./codetutor.toml (current directory)
    3. ~/.config/codetutor/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        CodetutorConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path: Path | None = config_path
    else:
        search_paths = [
            Path.cwd() / "codetutor.toml",
            Path.home() / ".config" / "codetutor" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    try:
        # Values set through the environment take precedence over the file
        env_overrides = CodetutorConfig().model_dump(exclude_unset=True)
        return CodetutorConfig(**_deep_merge(toml_data, env_overrides))
    except ValidationError as e:
        if selected_path:
            raise ValueError(
                f"Invalid configuration in {selected_path}: {e}"
            ) from e
        else:
            raise ValueError(f"Invalid configuration: {e}") from e
