"""Configuration management for the PTAL sync service.

Provides type-safe configuration with support for:
- YAML configuration files with environment variable substitution
- Standard search locations for the configuration file
- Pydantic-based validation and type safety

Example usage:
    from ptal_sync.config import ConfigurationLoader

    config = ConfigurationLoader().load_from_file("config.yaml")
    interval = config.ptal.sweep_interval_seconds
"""

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
)
from .loader import ConfigurationLoader
from .models import (
    Config,
    DatabaseConfig,
    DiscordConfig,
    GitHubConfig,
    LogLevel,
    PtalConfig,
    ServerConfig,
    SystemConfig,
)

__all__ = [
    "Config",
    "ConfigurationError",
    "ConfigurationFileError",
    "ConfigurationLoader",
    "ConfigurationValidationError",
    "DatabaseConfig",
    "DiscordConfig",
    "GitHubConfig",
    "LogLevel",
    "PtalConfig",
    "ServerConfig",
    "SystemConfig",
]
