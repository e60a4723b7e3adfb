"""Creation of new PTAL announcements.

This is the interface the chat command layer calls. It validates the target,
renders the first announcement from fresh GitHub data, posts it and records
the link between the message and the pull request.
"""

import asyncio
import logging
import re
import uuid
from collections.abc import Awaitable, Sequence
from typing import TypeVar

from .exceptions import (
    InvalidTargetError,
    NotFoundError,
    PtalError,
    TransientRemoteError,
    ValidationError,
)
from .interfaces import ChatSurface, PullRequestSource
from .models import DisplayPayload, PullRequestIdentity, Requester
from .reconciler import DEFAULT_REMOTE_TIMEOUT
from .render import RenderSettings, compose_announcement
from .status import PrStatus
from .store import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# https://github.com/<owner>/<repo>/pull/<n>, optionally followed by a tab such as /files
PULL_REQUEST_URL = re.compile(
    r"^https?://(?:www\.)?github\.com/"
    r"(?P<owner>[A-Za-z0-9-]+)/(?P<repo>[A-Za-z0-9._-]+)/pull/(?P<number>\d+)"
    r"(?:/[^?#]*)?(?:[?#].*)?$"
)


def parse_pull_request_url(url: str) -> PullRequestIdentity:
    """Extract the pull request identity from a GitHub web URL.

    Raises:
        ValidationError: If the URL does not point at a pull request
    """
    match = PULL_REQUEST_URL.match(url.strip())
    if match is None:
        raise ValidationError(
            f"Not a GitHub pull request URL: {url}", details={"url": url}
        )

    number = int(match.group("number"))
    if number <= 0:
        raise ValidationError(
            f"Invalid pull request number in {url}", details={"url": url}
        )
    return PullRequestIdentity(match.group("owner"), match.group("repo"), number)


class AnnouncementService:
    """Creates announcements and the records that keep them in sync."""

    def __init__(
        self,
        store: RecordStore,
        pull_requests: PullRequestSource,
        chat: ChatSurface,
        settings: RenderSettings | None = None,
        allowed_owners: Sequence[str] = (),
        remote_timeout: float = DEFAULT_REMOTE_TIMEOUT,
    ):
        """Initialize announcement service.

        Args:
            store: Record storage
            pull_requests: Source of pull request and review data
            chat: Chat surface to post announcements to
            settings: Rendering choices (roles, color, bot reviews)
            allowed_owners: Owners announcements may target; empty allows any
            remote_timeout: Upper bound in seconds for each remote call
        """
        self.store = store
        self.pull_requests = pull_requests
        self.chat = chat
        self.settings = settings or RenderSettings()
        self.allowed_owners = {owner.lower() for owner in allowed_owners}
        self.remote_timeout = remote_timeout

    async def create_from_url(
        self,
        pr_url: str,
        description: str,
        channel_id: str,
        requester: Requester | None = None,
        guild_id: str | None = None,
    ) -> tuple[DisplayPayload, uuid.UUID | None]:
        """Create an announcement for the pull request behind a GitHub URL."""
        identity = parse_pull_request_url(pr_url)
        return await self.create_announcement(
            identity.owner,
            identity.repository,
            identity.pr_number,
            description,
            channel_id,
            requester,
            guild_id=guild_id,
        )

    async def create_announcement(
        self,
        owner: str,
        repository: str,
        pr_number: int,
        description: str,
        channel_id: str,
        requester: Requester | None = None,
        guild_id: str | None = None,
    ) -> tuple[DisplayPayload, uuid.UUID | None]:
        """Post a new announcement and start tracking it.

        A pull request that is already merged is announced but not recorded,
        since a merged render is final.

        Returns:
            The rendered payload and the new record ID (None if merged)

        Raises:
            ValidationError: If the identity is malformed
            InvalidTargetError: If the owner is not allowed, or the pull
                request or channel does not exist
            TransientRemoteError: If GitHub or Discord failed transiently
            ConflictError: If the posted message somehow already owns a record.
                The posted message is deleted again when recording fails.
        """
        if not owner or not repository or pr_number <= 0:
            raise ValidationError(
                "Owner, repository and a positive pull request number are required"
            )
        identity = PullRequestIdentity(owner, repository, pr_number)

        if self.allowed_owners and owner.lower() not in self.allowed_owners:
            raise InvalidTargetError(
                f"Announcements for '{owner}' are not allowed",
                details={"owner": owner},
            )

        try:
            pr, raw_reviews = await asyncio.gather(
                self._bounded(
                    self.pull_requests.fetch_pull_request(
                        owner, repository, pr_number
                    ),
                    f"fetch {identity}",
                ),
                self._bounded(
                    self.pull_requests.fetch_reviews(owner, repository, pr_number),
                    f"fetch reviews for {identity}",
                ),
            )
        except NotFoundError as e:
            raise InvalidTargetError(
                f"Pull request {identity} does not exist", details=e.details
            ) from e

        status, payload = compose_announcement(
            pr=pr,
            raw_reviews=raw_reviews,
            identity=identity,
            description=description,
            requester=requester,
            guild_id=guild_id,
            settings=self.settings,
        )

        try:
            message_id = await self._bounded(
                self.chat.post_message(channel_id, payload.to_message_json()),
                f"post announcement to channel {channel_id}",
            )
        except NotFoundError as e:
            raise InvalidTargetError(
                f"Channel {channel_id} does not exist", details=e.details
            ) from e

        if status is PrStatus.MERGED:
            logger.info(f"Announced already merged {identity}; not tracking it")
            return payload, None

        try:
            record_id = await self.store.create(
                channel_id=channel_id,
                message_id=message_id,
                owner=owner,
                repository=repository,
                pr_number=pr_number,
                description=description,
                guild_id=guild_id,
                requester=requester,
            )
        except Exception:
            await self._discard_message(channel_id, message_id)
            raise

        logger.info(
            f"Announced {identity} in channel {channel_id} ({status.value})",
            extra={"record_id": str(record_id), "message_id": message_id},
        )
        return payload, record_id

    async def _bounded(self, call: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.remote_timeout)
        except TimeoutError as e:
            raise TransientRemoteError(
                f"Timed out after {self.remote_timeout}s: {what}"
            ) from e

    async def _discard_message(self, channel_id: str, message_id: str) -> None:
        try:
            await self._bounded(
                self.chat.delete_message(channel_id, message_id),
                f"delete message {message_id}",
            )
        except PtalError as e:
            logger.error(
                f"Failed to delete unrecorded announcement {message_id}: {e}",
                extra={"channel_id": channel_id},
            )
