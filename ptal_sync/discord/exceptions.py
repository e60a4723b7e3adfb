"""Errors raised by the Discord REST client.

Mirrors the GitHub client's errors; ``code`` exposes Discord's JSON error
code (for example 10008, Unknown Message) when the API supplied one.
"""

from typing import Any, ClassVar


class DiscordError(Exception):
    """A Discord request failed."""

    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}

    @property
    def code(self) -> int | None:
        code = self.response_data.get("code")
        return code if isinstance(code, int) else None

    @property
    def is_retryable(self) -> bool:
        return self.retryable


class DiscordAuthenticationError(DiscordError):
    """The bot token was rejected (401)."""


class DiscordForbiddenError(DiscordError):
    """The bot may not see or edit the channel or message (403)."""


class DiscordNotFoundError(DiscordError):
    """The channel or message no longer exists (404)."""


class DiscordRateLimitError(DiscordError):
    """Discord answered 429; ``retry_after`` is the advertised wait in seconds."""

    retryable = True

    def __init__(self, message: str, retry_after: float = 0.0, is_global: bool = False):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after
        self.is_global = is_global


class DiscordServerError(DiscordError):
    """Discord answered with a 5xx status."""

    retryable = True


class DiscordConnectionError(DiscordError):
    """The connection to Discord failed or timed out."""

    retryable = True
