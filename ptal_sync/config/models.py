"""Pydantic configuration models for the PTAL sync service.

This module defines all configuration schemas with type safety, validation,
and environment variable substitution support. Models are organized by
system component:

- Config: Root configuration containing all subsystems
- SystemConfig: Core system settings (log level, environment)
- Component-specific configs: Database, GitHub, Discord, PTAL engine, server

Environment variables are substituted using the format ${VAR_NAME} with
optional defaults: ${VAR_NAME:default_value}
"""

import os
import re
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ptal_sync.ptal.render import DEFAULT_EMBED_COLOR


class LogLevel(str, Enum):
    """Supported logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BaseConfigModel(BaseModel):
    """Base configuration model with environment variable substitution."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def substitute_env_vars(cls, values: Any) -> Any:
        """Substitute environment variables in string values.

        Supports formats:
        - ${VAR_NAME} - Required environment variable
        - ${VAR_NAME:default} - Optional with default value

        Raises:
            ValueError: If required environment variable is missing
        """

        def substitute_value(value: Any) -> Any:
            if isinstance(value, str):
                # Pattern: ${VAR_NAME} or ${VAR_NAME:default}
                pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

                def replacer(match: re.Match[str]) -> str:
                    var_name = match.group(1)
                    default_value = match.group(2)

                    env_value = os.getenv(var_name)
                    if env_value is not None:
                        return env_value
                    elif default_value is not None:
                        return default_value
                    else:
                        raise ValueError(
                            f"Required environment variable '{var_name}' not found"
                        )

                return re.sub(pattern, replacer, value)
            elif isinstance(value, dict):
                return {k: substitute_value(v) for k, v in value.items()}
            elif isinstance(value, list):
                return [substitute_value(item) for item in value]
            else:
                return value

        if not isinstance(values, dict):
            return values
        return {key: substitute_value(value) for key, value in values.items()}


class SystemConfig(BaseConfigModel):
    """Core system configuration settings."""

    log_level: LogLevel = Field(
        default=LogLevel.INFO, description="System-wide logging level"
    )

    environment: str = Field(
        default="development",
        description="Deployment environment (development, staging, production)",
    )


class DatabaseConfig(BaseConfigModel):
    """Database connection and pool configuration."""

    url: str = Field(description="Database connection URL")

    pool_size: int = Field(
        default=5, ge=1, le=100, description="Database connection pool size"
    )

    max_overflow: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Maximum overflow connections beyond pool size",
    )

    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout in seconds for getting connection from pool",
    )

    pool_recycle: int = Field(
        default=3600, ge=300, le=86400, description="Connection recycle time in seconds"
    )

    echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    @field_validator("url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v:
            raise ValueError("Database URL cannot be empty")

        parsed = urlparse(v)
        if not parsed.scheme:
            raise ValueError("Database URL must include scheme")
        if parsed.scheme.split("+")[0] not in ("postgresql", "sqlite"):
            raise ValueError(f"Unsupported database scheme: {parsed.scheme}")

        return v


class GitHubConfig(BaseConfigModel):
    """GitHub API access and webhook configuration.

    Either ``token`` or the GitHub App triple (``app_id``, ``private_key``,
    ``installation_id``) must be provided.
    """

    token: str | None = Field(default=None, description="Personal access token")

    app_id: str | None = Field(default=None, description="GitHub App ID")

    private_key: str | None = Field(
        default=None, description="GitHub App PEM private key"
    )

    installation_id: str | None = Field(
        default=None, description="GitHub App installation ID"
    )

    base_url: str = Field(
        default="https://api.github.com", description="GitHub REST API base URL"
    )

    timeout: int = Field(
        default=30, ge=1, le=300, description="Request timeout in seconds"
    )

    max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries for transient GitHub failures"
    )

    webhook_secret: str | None = Field(
        default=None,
        description="Shared secret for X-Hub-Signature-256 verification",
    )

    allowed_owners: list[str] = Field(
        default_factory=list,
        description="Owners (users or orgs) announcements may target; empty allows all",
    )

    @model_validator(mode="after")
    def validate_credentials(self) -> "GitHubConfig":
        """Ensure exactly one complete authentication method is configured."""
        app_fields = (self.app_id, self.private_key, self.installation_id)
        if self.token:
            return self
        if all(app_fields):
            return self
        if any(app_fields):
            raise ValueError(
                "GitHub App authentication requires app_id, private_key "
                "and installation_id"
            )
        raise ValueError("GitHub token or GitHub App credentials must be configured")

    @property
    def uses_app_auth(self) -> bool:
        return not self.token


class DiscordConfig(BaseConfigModel):
    """Discord REST API configuration."""

    bot_token: str = Field(description="Discord bot token")

    base_url: str = Field(
        default="https://discord.com/api/v10", description="Discord REST API base URL"
    )

    timeout: int = Field(
        default=30, ge=1, le=300, description="Request timeout in seconds"
    )

    max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries for transient Discord failures"
    )

    announcement_roles: dict[str, str] = Field(
        default_factory=dict,
        description="Role pinged by announcements, keyed by guild ID",
    )

    embed_color: int = Field(
        default=DEFAULT_EMBED_COLOR,
        ge=0,
        le=0xFFFFFF,
        description="Announcement embed color",
    )

    @field_validator("bot_token")
    @classmethod
    def validate_bot_token(cls, v: str) -> str:
        if not v or v.strip() == "":
            raise ValueError("Discord bot token cannot be empty")
        return v.strip()

    @field_validator("announcement_roles", mode="before")
    @classmethod
    def coerce_snowflakes(cls, v: Any) -> Any:
        """YAML reads unquoted snowflakes as integers."""
        if isinstance(v, dict):
            return {str(k): str(role) for k, role in v.items()}
        return v


class PtalConfig(BaseConfigModel):
    """Synchronization engine settings."""

    sweep_interval_seconds: int = Field(
        default=300,
        ge=10,
        le=86400,
        description="Interval between full reconciliation sweeps",
    )

    remote_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=300,
        description="Upper bound for each remote call made during reconciliation",
    )

    max_concurrent_reconciliations: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Reconciliations run at once by a single event or sweep",
    )

    display_bot_reviews: bool = Field(
        default=False,
        description="Show bot reviews in the announcement's review list",
    )


class ServerConfig(BaseConfigModel):
    """Inbound HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind address")  # nosec B104

    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")

    webhook_path: str = Field(
        default="/webhooks/github", description="GitHub webhook endpoint path"
    )

    delivery_cache_size: int = Field(
        default=1024,
        ge=1,
        le=1_000_000,
        description="Number of recent webhook delivery IDs remembered",
    )

    @field_validator("webhook_path")
    @classmethod
    def validate_webhook_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("Webhook path must start with '/'")
        return v


class Config(BaseConfigModel):
    """Root configuration containing all subsystem configurations."""

    system: SystemConfig = Field(
        default_factory=SystemConfig, description="Core system configuration"
    )

    database: DatabaseConfig = Field(description="Database configuration")

    github: GitHubConfig = Field(description="GitHub configuration")

    discord: DiscordConfig = Field(description="Discord configuration")

    ptal: PtalConfig = Field(
        default_factory=PtalConfig, description="Synchronization engine configuration"
    )

    server: ServerConfig = Field(
        default_factory=ServerConfig, description="HTTP server configuration"
    )
