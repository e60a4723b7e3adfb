"""Errors raised while loading the service configuration."""

from typing import Any


class ConfigurationError(Exception):
    """The configuration could not be loaded or is unusable.

    ``details`` holds structured context (offending keys, IDs) for logging.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationFileError(ConfigurationError):
    """The configuration file is missing, unreadable or not a YAML mapping."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.file_path = file_path

    def __str__(self) -> str:
        message = super().__str__()
        if self.file_path and self.file_path not in message:
            return f"{message} ({self.file_path})"
        return message


class ConfigurationValidationError(ConfigurationError):
    """The configuration was read but failed validation.

    ``validation_errors`` holds pydantic's error list when schema validation
    failed; cross-section rule violations leave it empty and use ``details``.
    """

    def __init__(
        self,
        message: str,
        validation_errors: list[Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.validation_errors = validation_errors or []
