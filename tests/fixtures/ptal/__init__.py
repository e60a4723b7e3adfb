"""
In-memory collaborators and data factories for synchronization engine tests.

The fakes implement the engine's ``PullRequestSource`` and ``ChatSurface``
interfaces so reconciliation can be exercised without GitHub or Discord.
"""

from .factories import (
    ACME_WIDGETS_42,
    CHANNEL_ID,
    GUILD_ID,
    embed_field,
    make_pull_request,
    make_review,
    make_webhook_payload,
)
from .fakes import FakeChatSurface, FakePullRequestSource

__all__ = [
    "ACME_WIDGETS_42",
    "CHANNEL_ID",
    "GUILD_ID",
    "FakeChatSurface",
    "FakePullRequestSource",
    "embed_field",
    "make_pull_request",
    "make_review",
    "make_webhook_payload",
]
