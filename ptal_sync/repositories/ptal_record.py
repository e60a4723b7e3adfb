"""PtalRecord repository with PR-identity lookups."""

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ptal_sync.models import PtalRecord

from .base import BaseRepository


class PtalRecordRepository(BaseRepository[PtalRecord]):
    """Repository for PtalRecord operations."""

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, PtalRecord)

    async def get_by_pr_identity(
        self, owner: str, repository: str, pr_number: int
    ) -> list[PtalRecord]:
        """Get every record announcing the given pull request."""
        query = (
            select(PtalRecord)
            .where(
                and_(
                    PtalRecord.owner == owner,
                    PtalRecord.repository == repository,
                    PtalRecord.pr_number == pr_number,
                )
            )
            .order_by(PtalRecord.created_at)
        )
        return await self._execute_query(query)

    async def get_by_message_id(self, message_id: str) -> PtalRecord | None:
        """Get the record that owns a chat message."""
        query = select(PtalRecord).where(PtalRecord.message_id == message_id)
        return await self._execute_single_query(query)
