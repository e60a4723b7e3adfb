"""Generic session-scoped repository.

A repository never commits: the caller owns the session and its transaction
(see ``DatabaseConnectionManager.get_session``), so several repository calls
can share one unit of work.
"""

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ptal_sync.models.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    """Create, read, count and delete for one model class."""

    def __init__(self, session: AsyncSession, model_class: type[ModelType]):
        self.session = session
        self.model_class = model_class

    async def create(self, **kwargs: Any) -> ModelType:
        """Insert a row and return it with server-side defaults loaded.

        Constraint violations surface here as ``IntegrityError`` because the
        insert is flushed immediately.
        """
        entity = self.model_class(**kwargs)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def get_by_id(self, entity_id: uuid.UUID) -> ModelType | None:
        return await self.session.get(self.model_class, entity_id)

    async def delete(self, entity: ModelType) -> None:
        await self.session.delete(entity)
        await self.session.flush()

    async def delete_by_id(self, entity_id: uuid.UUID) -> bool:
        """Delete by primary key.

        Returns:
            False if no row had that key
        """
        entity = await self.get_by_id(entity_id)
        if entity is None:
            return False
        await self.delete(entity)
        return True

    async def list_all(
        self, limit: int | None = None, offset: int | None = None
    ) -> list[ModelType]:
        """Rows oldest first, optionally paged."""
        query = select(self.model_class).order_by(
            self.model_class.created_at, self.model_class.id
        )
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return await self._execute_query(query)

    async def count_all(self) -> int:
        result = await self.session.execute(select(func.count(self.model_class.id)))
        return result.scalar_one()

    async def _execute_query(self, query: Select[tuple[ModelType]]) -> list[ModelType]:
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _execute_single_query(
        self, query: Select[tuple[ModelType]]
    ) -> ModelType | None:
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
