"""Durable storage of PTAL records.

Every operation opens its own session from the connection manager and
commits before returning, so concurrent reconciliations never share a unit
of work. Records are returned detached; their columns stay readable because
sessions are created with ``expire_on_commit=False``.
"""

import logging
import uuid

from sqlalchemy.exc import IntegrityError

from ptal_sync.database import DatabaseConnectionManager
from ptal_sync.models import PtalRecord
from ptal_sync.repositories import PtalRecordRepository

from .exceptions import ConflictError
from .models import Requester

logger = logging.getLogger(__name__)


class RecordStore:
    """Create, look up and delete ``PtalRecord`` rows.

    No update operation exists: a record's PR identity and description are
    fixed at creation.
    """

    def __init__(self, database: DatabaseConnectionManager):
        self.database = database

    async def create(
        self,
        *,
        channel_id: str,
        message_id: str,
        owner: str,
        repository: str,
        pr_number: int,
        description: str,
        guild_id: str | None = None,
        requester: Requester | None = None,
    ) -> uuid.UUID:
        """Persist a new record and return its ID.

        Raises:
            ConflictError: If ``message_id`` already owns a record. Nothing is
                written in that case.
        """
        try:
            async with self.database.get_session() as session:
                repo = PtalRecordRepository(session)
                if await repo.get_by_message_id(message_id) is not None:
                    raise ConflictError(
                        f"Message {message_id} already owns a record",
                        details={"message_id": message_id},
                    )
                record = await repo.create(
                    channel_id=channel_id,
                    message_id=message_id,
                    guild_id=guild_id,
                    owner=owner,
                    repository=repository,
                    pr_number=pr_number,
                    description=description,
                    requester_id=requester.id if requester else None,
                    requester_name=requester.name if requester else None,
                    requester_avatar_url=requester.avatar_url if requester else None,
                )
                record_id = record.id
        except IntegrityError as e:
            # Lost a race with a concurrent create for the same message
            raise ConflictError(
                f"Message {message_id} already owns a record",
                details={"message_id": message_id},
            ) from e

        logger.info(
            f"Created PTAL record {record_id} for {owner}/{repository}#{pr_number}",
            extra={"record_id": str(record_id), "message_id": message_id},
        )
        return record_id

    async def get(self, record_id: uuid.UUID) -> PtalRecord | None:
        async with self.database.get_session() as session:
            return await PtalRecordRepository(session).get_by_id(record_id)

    async def get_by_pr_identity(
        self, owner: str, repository: str, pr_number: int
    ) -> list[PtalRecord]:
        """All records announcing a pull request, oldest first."""
        async with self.database.get_session() as session:
            return await PtalRecordRepository(session).get_by_pr_identity(
                owner, repository, pr_number
            )

    async def get_all(self) -> list[PtalRecord]:
        async with self.database.get_session() as session:
            return await PtalRecordRepository(session).list_all()

    async def delete(self, record_id: uuid.UUID) -> bool:
        """Delete a record. Unknown IDs are ignored.

        Returns:
            True if a record was deleted
        """
        async with self.database.get_session() as session:
            deleted = await PtalRecordRepository(session).delete_by_id(record_id)

        if deleted:
            logger.info(
                f"Deleted PTAL record {record_id}", extra={"record_id": str(record_id)}
            )
        return deleted

    async def count(self) -> int:
        async with self.database.get_session() as session:
            return await PtalRecordRepository(session).count_all()
