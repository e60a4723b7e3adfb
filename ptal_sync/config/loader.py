"""Configuration loading and management.

Loads configuration from YAML files and validates it. Callers own the loaded
Config and pass it on explicitly. The loading hierarchy is:
1. Default values from Pydantic models
2. Configuration file (YAML)
3. Environment variable substitution inside the file
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .exceptions import (
    ConfigurationFileError,
    ConfigurationValidationError,
)
from .models import Config

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV_VAR = "PTAL_SYNC_CONFIG_PATH"


class ConfigurationLoader:
    """Handles loading and validation of configuration from various sources."""

    def __init__(self) -> None:
        self._config: Config | None = None
        self._config_file_path: Path | None = None

    def load_from_file(self, config_path: str | Path, validate: bool = True) -> Config:
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file
            validate: Whether to run cross-section validation after loading

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationFileError: If file cannot be read or parsed
            ConfigurationValidationError: If configuration validation fails
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationFileError(
                f"Configuration file not found: {config_path}",
                file_path=str(config_path),
            )

        if not config_path.is_file():
            raise ConfigurationFileError(
                f"Configuration path is not a file: {config_path}",
                file_path=str(config_path),
            )

        try:
            with open(config_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationFileError(
                f"Failed to parse YAML configuration: {e}", file_path=str(config_path)
            ) from e
        except OSError as e:
            raise ConfigurationFileError(
                f"Failed to read configuration file: {e}", file_path=str(config_path)
            ) from e

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ConfigurationFileError(
                "Configuration file must contain a mapping at the top level",
                file_path=str(config_path),
            )

        config = self.load_from_dict(config_data, validate=validate)
        self._config_file_path = config_path.resolve()
        logger.info(f"Loaded configuration from {self._config_file_path}")
        return config

    def load_from_dict(
        self, config_data: dict[str, Any], validate: bool = True
    ) -> Config:
        """Load configuration from a dictionary.

        Raises:
            ConfigurationValidationError: If configuration validation fails
        """
        try:
            config = Config(**config_data)
        except ValidationError as e:
            raise ConfigurationValidationError(
                f"Configuration validation failed: {e}",
                validation_errors=e.errors(),
            ) from e

        self._config = config
        if validate:
            self._validate_configuration()

        return config

    def find_config_file(self, filename: str = "config.yaml") -> Path | None:
        """Find configuration file in standard locations.

        Search order:
        1. Current working directory
        2. PTAL_SYNC_CONFIG_PATH environment variable (file or directory)
        3. ~/.ptal-sync/
        4. /etc/ptal-sync/

        Returns:
            Path to found configuration file, or None if not found
        """
        search_paths = [Path.cwd() / filename]

        env_path_str = os.getenv(CONFIG_PATH_ENV_VAR)
        if env_path_str:
            env_path = Path(env_path_str)
            if env_path.is_file():
                search_paths.append(env_path)
            else:
                search_paths.append(env_path / filename)

        search_paths.append(Path.home() / ".ptal-sync" / filename)
        search_paths.append(Path("/etc/ptal-sync") / filename)

        for path in search_paths:
            if path.exists() and path.is_file():
                return path

        return None

    def auto_load(self, config_filename: str = "config.yaml") -> Config:
        """Automatically load configuration from standard locations.

        Raises:
            ConfigurationFileError: If no configuration file is found
            ConfigurationValidationError: If configuration validation fails
        """
        config_path = self.find_config_file(config_filename)

        if config_path is None:
            raise ConfigurationFileError(
                f"No configuration file '{config_filename}' found in standard locations"
            )

        return self.load_from_file(config_path)

    def _validate_configuration(self) -> None:
        """Validate rules that span configuration sections.

        Raises:
            ConfigurationValidationError: If validation fails
        """
        if self._config is None:
            raise ConfigurationValidationError("No configuration loaded")

        github = self._config.github
        if not github.webhook_secret:
            if self._config.system.environment.lower() == "production":
                raise ConfigurationValidationError(
                    "github.webhook_secret is required in production"
                )
            logger.warning(
                "No GitHub webhook secret configured; webhook signatures "
                "will not be verified"
            )

        unknown_roles = [
            guild_id
            for guild_id, role_id in self._config.discord.announcement_roles.items()
            if not role_id.isdigit() or not guild_id.isdigit()
        ]
        if unknown_roles:
            raise ConfigurationValidationError(
                "discord.announcement_roles must map guild IDs to role IDs",
                details={"invalid_guilds": unknown_roles},
            )

    @property
    def config(self) -> Config | None:
        return self._config

    @property
    def config_file_path(self) -> Path | None:
        return self._config_file_path

    @property
    def is_loaded(self) -> bool:
        return self._config is not None
