"""Discord REST client package."""

from .client import DiscordClient, DiscordClientConfig
from .exceptions import (
    DiscordAuthenticationError,
    DiscordConnectionError,
    DiscordError,
    DiscordForbiddenError,
    DiscordNotFoundError,
    DiscordRateLimitError,
    DiscordServerError,
)

__all__ = [
    "DiscordAuthenticationError",
    "DiscordClient",
    "DiscordClientConfig",
    "DiscordConnectionError",
    "DiscordError",
    "DiscordForbiddenError",
    "DiscordNotFoundError",
    "DiscordRateLimitError",
    "DiscordServerError",
]
