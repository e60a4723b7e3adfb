"""Database configuration module.

Provides type-safe database configuration with environment variable support,
proper defaults, and connection pool settings for PostgreSQL and SQLite.
"""

import os
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_SCHEMES = ("postgresql", "sqlite")


class DatabasePoolConfig(BaseModel):
    """Database connection pool configuration."""

    pool_size: int = Field(
        default=5, description="Number of connections to maintain in the pool"
    )
    max_overflow: int = Field(
        default=10,
        description="Number of additional connections to create when pool is exhausted",
    )
    pool_pre_ping: bool = Field(
        default=True, description="Enable connection health checks before use"
    )
    pool_recycle: int = Field(
        default=3600,
        description="Number of seconds after which a connection is recreated",
    )
    pool_timeout: int = Field(
        default=30, description="Timeout in seconds to get a connection from the pool"
    )


class DatabaseConfig(BaseSettings):
    """Database configuration with environment variable support.

    Environment variables:
    - DATABASE_URL: Full database connection URL
    - DATABASE_HOST: Database host (default: localhost)
    - DATABASE_PORT: Database port (default: 5432)
    - DATABASE_DATABASE: Database name (default: ptal_sync)
    - DATABASE_USERNAME: Database user (default: postgres)
    - DATABASE_PASSWORD: Database password
    - DATABASE_POOL__POOL_SIZE: Connection pool size (default: 5)
    - DATABASE_POOL__MAX_OVERFLOW: Pool max overflow (default: 10)
    """

    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
        description="Complete database URL (overrides individual components)",
    )
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="ptal_sync", description="Database name")
    username: str = Field(default="postgres", description="Database user")
    password: str | None = Field(
        default=None,
        description="Database password (required unless DATABASE_URL provided)",
    )

    pool: DatabasePoolConfig = Field(default_factory=DatabasePoolConfig)

    echo_sql: bool = Field(
        default=False, description="Enable SQL query logging (development only)"
    )
    connect_timeout: int = Field(
        default=10, description="Connection timeout in seconds"
    )
    command_timeout: int = Field(default=60, description="Command timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: Any) -> Any:
        """Validate database URL if provided."""
        if v:
            parsed = urlparse(v)
            scheme = parsed.scheme.split("+")[0]
            if scheme not in SUPPORTED_SCHEMES:
                raise ValueError(f"Unsupported database scheme: {parsed.scheme}")
            # SQLite URLs carry a path instead of a host
            if scheme != "sqlite" and not parsed.hostname:
                raise ValueError("Invalid database URL format")
        return v

    @field_validator("pool", mode="before")
    @classmethod
    def validate_pool_config(cls, v: Any) -> Any:
        """Validate pool configuration from flat environment variables."""
        if isinstance(v, dict):
            return DatabasePoolConfig(**v)
        return v

    @model_validator(mode="after")
    def construct_database_url(self) -> "DatabaseConfig":
        """Construct database URL from components if not explicitly provided."""
        if not self.database_url and self.password:
            self.database_url = f"postgresql+asyncpg://{self.username}:{self.password}@{self.host}:{self.port}/{self.database}"
        return self

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured URL targets SQLite."""
        return bool(self.database_url and self.database_url.startswith("sqlite"))

    def get_sqlalchemy_url(self) -> str:
        """Get SQLAlchemy-compatible database URL."""
        if not self.database_url:
            raise ValueError(
                "No database URL available - provide either database_url or password"
            )
        return self.database_url

    def get_alembic_url(self) -> str:
        """Get Alembic-compatible database URL (sync driver)."""
        return (
            self.get_sqlalchemy_url().replace("+asyncpg", "").replace("+aiosqlite", "")
        )

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return os.getenv("ENVIRONMENT", "development").lower() == "production"

    def should_echo_sql(self) -> bool:
        """Determine if SQL should be echoed (never in production)."""
        return self.echo_sql and not self.is_production()


_config_instance: DatabaseConfig | None = None


def get_database_config() -> DatabaseConfig:
    """Get database configuration instance.

    Returns cached instance on subsequent calls.
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = DatabaseConfig()

    return _config_instance


def reset_database_config() -> None:
    """Reset configuration instance (useful for testing)."""
    global _config_instance
    _config_instance = None
