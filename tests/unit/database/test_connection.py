"""
Unit tests for database connection management module.

Tests engine creation, session commit and rollback handling, schema
creation and health checks against SQLite.
"""

from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.pool import StaticPool

from ptal_sync.database import DatabaseConfig, DatabaseConnectionManager
from ptal_sync.models import PtalRecord


def manager_for(url: str) -> DatabaseConnectionManager:
    return DatabaseConnectionManager(DatabaseConfig(database_url=url))


def make_record(message_id: str = "1000") -> PtalRecord:
    return PtalRecord(
        channel_id="555",
        message_id=message_id,
        owner="acme",
        repository="widgets",
        pr_number=42,
        description="fix memory leak",
    )


class TestDatabaseConnectionManager:
    """Test DatabaseConnectionManager against SQLite."""

    async def test_in_memory_sqlite_uses_static_pool(self) -> None:
        manager = manager_for("sqlite+aiosqlite:///:memory:")

        assert isinstance(manager.engine.sync_engine.pool, StaticPool)
        assert await manager.health_check()

        await manager.close()

    async def test_session_commits(self, tmp_path: Path) -> None:
        """
        Why: Store operations rely on the session committing on clean exit
        What: Tests that a record added in one session is visible in the next
        How: Adds a record, then counts rows from a fresh session
        """
        manager = manager_for(f"sqlite+aiosqlite:///{tmp_path / 'ptal.db'}")
        await manager.create_all()

        async with manager.get_session() as session:
            session.add(make_record())

        async with manager.get_session() as session:
            count = await session.scalar(select(func.count(PtalRecord.id)))

        assert count == 1
        await manager.close()

    async def test_session_rolls_back_on_error(self, tmp_path: Path) -> None:
        manager = manager_for(f"sqlite+aiosqlite:///{tmp_path / 'ptal.db'}")
        await manager.create_all()

        with pytest.raises(RuntimeError):
            async with manager.get_session() as session:
                session.add(make_record())
                await session.flush()
                raise RuntimeError("boom")

        async with manager.get_session() as session:
            count = await session.scalar(select(func.count(PtalRecord.id)))

        assert count == 0
        await manager.close()

    async def test_health_check_failure(self, tmp_path: Path) -> None:
        manager = manager_for(
            f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'ptal.db'}"
        )

        assert await manager.health_check() is False

        await manager.close()

    async def test_close_resets_engine(self) -> None:
        manager = manager_for("sqlite+aiosqlite:///:memory:")
        first_engine = manager.engine

        await manager.close()

        assert manager.engine is not first_engine
        await manager.close()
