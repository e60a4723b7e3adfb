"""Abstract collaborators of the synchronization engine.

The engine only talks to GitHub and Discord through these interfaces so the
reconciler, router and sweeper can be exercised with in-memory fakes.
Implementations raise ``NotFoundError`` when the remote object is gone and
``TransientRemoteError`` for every other failure.
"""

from abc import ABC, abstractmethod
from typing import Any


class PullRequestSource(ABC):
    """Read access to pull requests on the code-review platform."""

    @abstractmethod
    async def fetch_pull_request(
        self, owner: str, repository: str, pr_number: int
    ) -> dict[str, Any]:
        """Fetch the current pull request object."""
        pass

    @abstractmethod
    async def fetch_reviews(
        self, owner: str, repository: str, pr_number: int
    ) -> list[dict[str, Any]]:
        """Fetch every review on the pull request in chronological order."""
        pass


class ChatSurface(ABC):
    """Message operations on the chat platform."""

    @abstractmethod
    async def fetch_message(self, channel_id: str, message_id: str) -> dict[str, Any]:
        """Fetch an existing message."""
        pass

    @abstractmethod
    async def post_message(self, channel_id: str, payload: dict[str, Any]) -> str:
        """Post a new message and return its ID."""
        pass

    @abstractmethod
    async def edit_message(
        self, channel_id: str, message_id: str, payload: dict[str, Any]
    ) -> None:
        """Replace the body of an existing message."""
        pass

    @abstractmethod
    async def delete_message(self, channel_id: str, message_id: str) -> None:
        """Delete a message."""
        pass
