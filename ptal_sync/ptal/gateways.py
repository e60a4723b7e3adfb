"""Adapters from the GitHub and Discord REST clients to the engine interfaces.

Client exceptions are translated at this boundary: a 404 becomes
``NotFoundError`` and anything else becomes ``TransientRemoteError``.
"""

import logging
from typing import Any

from ptal_sync.discord import DiscordClient, DiscordError, DiscordNotFoundError
from ptal_sync.github import GitHubClient, GitHubError, GitHubNotFoundError

from .exceptions import NotFoundError, TransientRemoteError
from .interfaces import ChatSurface, PullRequestSource

logger = logging.getLogger(__name__)


class GitHubPullRequestSource(PullRequestSource):
    """Pull request reads backed by ``GitHubClient``."""

    def __init__(self, client: GitHubClient):
        self.client = client

    async def fetch_pull_request(
        self, owner: str, repository: str, pr_number: int
    ) -> dict[str, Any]:
        try:
            return await self.client.get_pull(owner, repository, pr_number)
        except GitHubNotFoundError as e:
            raise NotFoundError(
                f"Pull request {owner}/{repository}#{pr_number} not found",
                details={"status_code": e.status_code},
            ) from e
        except GitHubError as e:
            raise TransientRemoteError(
                f"Failed to fetch pull request {owner}/{repository}#{pr_number}: {e}",
                details={"status_code": e.status_code},
            ) from e

    async def fetch_reviews(
        self, owner: str, repository: str, pr_number: int
    ) -> list[dict[str, Any]]:
        try:
            return await self.client.list_reviews(owner, repository, pr_number)
        except GitHubNotFoundError as e:
            raise NotFoundError(
                f"Pull request {owner}/{repository}#{pr_number} not found",
                details={"status_code": e.status_code},
            ) from e
        except GitHubError as e:
            raise TransientRemoteError(
                f"Failed to list reviews for {owner}/{repository}#{pr_number}: {e}",
                details={"status_code": e.status_code},
            ) from e


class DiscordChatSurface(ChatSurface):
    """Message operations backed by ``DiscordClient``."""

    def __init__(self, client: DiscordClient):
        self.client = client

    def _translate(self, error: DiscordError, action: str) -> Exception:
        details = {"status_code": error.status_code, "code": error.code}
        if isinstance(error, DiscordNotFoundError):
            return NotFoundError(f"Discord {action}: not found", details=details)
        return TransientRemoteError(f"Discord {action} failed: {error}", details=details)

    async def fetch_message(self, channel_id: str, message_id: str) -> dict[str, Any]:
        try:
            return await self.client.get_message(channel_id, message_id)
        except DiscordError as e:
            raise self._translate(e, f"fetch message {message_id}") from e

    async def post_message(self, channel_id: str, payload: dict[str, Any]) -> str:
        try:
            message = await self.client.create_message(channel_id, payload)
        except DiscordError as e:
            raise self._translate(e, f"post to channel {channel_id}") from e

        message_id = message.get("id")
        if not message_id:
            raise TransientRemoteError(
                "Discord did not return a message ID", details={"channel_id": channel_id}
            )
        return str(message_id)

    async def edit_message(
        self, channel_id: str, message_id: str, payload: dict[str, Any]
    ) -> None:
        try:
            await self.client.edit_message(channel_id, message_id, payload)
        except DiscordError as e:
            raise self._translate(e, f"edit message {message_id}") from e

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        try:
            await self.client.delete_message(channel_id, message_id)
        except DiscordError as e:
            raise self._translate(e, f"delete message {message_id}") from e
        logger.debug(f"Deleted Discord message {message_id} in channel {channel_id}")
