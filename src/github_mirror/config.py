"""Configuration settings for GitHub Mirror."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Configuration for the database connection.

    The SQLite options are applied to every new connection and ignored
    for other backends.
    """

    busy_timeout_ms: int = Field(
        default=5_000,
        ge=0,
        description="How long SQLite waits on a locked database before failing",
    )
    wal: bool = Field(
        default=True,
        description="Use SQLite write-ahead logging so readers do not block the writer",
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement (also enabled by DEBUG log level)",
    )


class RateLimitConfig(BaseModel):
    """Configuration for rate limit handling.

    Controls the fallback wait used when GitHub signals a rate limit
    without telling us when to come back.
    """

    default_backoff_ms: int = Field(
        default=60_000,
        ge=0,
        description="Wait used when neither Retry-After nor X-RateLimit-Reset is usable",
    )


class WorkflowConfig(BaseModel):
    """Configuration for durable workflow execution.

    Controls retry/backoff behavior per step and the size of the
    bounded fetch windows used by the bootstrap steps.
    """

    # Retry policy
    max_step_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Attempts per step for transient/malformed failures before failing",
    )
    initial_backoff_ms: int = Field(
        default=1_000,
        ge=0,
        description="Backoff before the first retry of a failed step",
    )
    backoff_base: float = Field(
        default=2.0,
        ge=1.0,
        description="Exponential growth factor between retries",
    )
    max_backoff_ms: int = Field(
        default=60_000,
        ge=0,
        description="Upper bound on a single transient backoff",
    )
    max_rate_limit_waits: int = Field(
        default=50,
        ge=1,
        description="Safety cap on rate-limit waits per step (counted separately)",
    )
    cancel_poll_ms: int = Field(
        default=5_000,
        ge=1,
        description="How often a backoff wait re-reads the cancel flag set by other processes",
    )

    # Fetch windows
    per_page: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Page size for paginated GitHub endpoints",
    )
    commit_window: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Number of recent commits fetched during bootstrap",
    )
    workflow_run_window: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Number of recent workflow runs fetched (with their jobs)",
    )


class GitHubAppConfig(BaseModel):
    """Configuration for GitHub App installation tokens."""

    app_id: str = Field(default="", description="GitHub App ID")
    private_key: str = Field(default="", description="GitHub App private key (PEM)")
    installation_id: int | None = Field(default=None, description="App installation ID")
    refresh_margin_seconds: int = Field(
        default=300,
        ge=0,
        description="Refresh installation tokens this many seconds before expiry",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging behavior.

    Controls file logging, rotation, and output format.
    """

    log_file: str | None = Field(
        default=None,
        description="Optional path for file logging (enables rotation)",
    )
    rotation: str = Field(
        default="10 MB",
        description="When to rotate log file (e.g., '10 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated logs",
    )
    serialize: bool = Field(
        default=False,
        description="If True, output JSON format to file",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # Database
    # --------------------------------------------------------------------------
    database_url: str = Field(
        default="sqlite+aiosqlite:///./github_mirror.db",
        description="Async SQLAlchemy database connection string",
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig,
        description="Connection options (SQLite busy timeout and journal mode)",
    )

    # --------------------------------------------------------------------------
    # GitHub API
    # --------------------------------------------------------------------------
    github_auth_mode: Literal["pat", "app"] = Field(
        default="pat",
        description="Token strategy: static PAT or GitHub App installation tokens",
    )
    github_token: str = Field(
        default="",
        description="GitHub personal access token (pat mode)",
    )
    github_app: GitHubAppConfig = Field(
        default_factory=GitHubAppConfig,
        description="GitHub App credentials (app mode)",
    )

    # --------------------------------------------------------------------------
    # Application
    # --------------------------------------------------------------------------
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # --------------------------------------------------------------------------
    # Rate Limiting & Workflow
    # --------------------------------------------------------------------------
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Rate limit handling configuration",
    )
    workflow: WorkflowConfig = Field(
        default_factory=WorkflowConfig,
        description="Durable workflow retry and fetch-window configuration",
    )

    # --------------------------------------------------------------------------
    # Logging Configuration
    # --------------------------------------------------------------------------
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration (file output, rotation)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
