"""Database connection management.

Provides async SQLAlchemy engine management, connection pooling, and database
session handling. Every store operation opens its own short-lived session so
concurrent reconciliations never share a unit of work.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool

from ptal_sync.models import Base

from .config import DatabaseConfig, get_database_config

logger = logging.getLogger(__name__)


class DatabaseConnectionManager:
    """Manages database connections and provides session handling.

    Handles connection pooling, health checks, and provides context managers
    for database operations with proper cleanup and error handling.
    """

    def __init__(self, config: DatabaseConfig | None = None):
        self.config = config or get_database_config()
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Get or create async database engine."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create async session factory."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,  # Keep objects usable after commit
            )
        return self._session_factory

    def _create_engine(self) -> AsyncEngine:
        """Create async SQLAlchemy engine for the configured backend."""
        url = self.config.get_sqlalchemy_url()

        if self.config.is_sqlite:
            # In-memory SQLite only lives as long as its single connection
            engine_kwargs: dict[str, Any] = {}
            if ":memory:" in url:
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine = create_async_engine(
                url, echo=self.config.should_echo_sql(), **engine_kwargs
            )
        else:
            engine = create_async_engine(
                url,
                poolclass=AsyncAdaptedQueuePool,
                pool_size=self.config.pool.pool_size,
                max_overflow=self.config.pool.max_overflow,
                pool_pre_ping=self.config.pool.pool_pre_ping,
                pool_recycle=self.config.pool.pool_recycle,
                pool_timeout=self.config.pool.pool_timeout,
                connect_args={
                    "timeout": self.config.connect_timeout,
                    "command_timeout": self.config.command_timeout,
                },
                echo=self.config.should_echo_sql(),
            )

        self._register_connection_events(engine)

        logger.info(
            "Created database engine",
            extra={
                "sqlite": self.config.is_sqlite,
                "pool_size": self.config.pool.pool_size,
            },
        )

        return engine

    def _register_connection_events(self, engine: AsyncEngine) -> None:
        """Register SQLAlchemy events for connection monitoring."""

        @event.listens_for(engine.sync_engine, "connect")
        def on_connect(dbapi_connection: Any, connection_record: Any) -> None:
            logger.debug("New database connection established")

        @event.listens_for(engine.sync_engine, "invalidate")
        def on_invalidate(
            dbapi_connection: Any, connection_record: Any, exception: Exception | None
        ) -> None:
            logger.warning(
                "Database connection invalidated",
                extra={"error": str(exception) if exception else None},
            )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get database session with automatic commit and cleanup.

        Usage:
            async with connection_manager.get_session() as session:
                result = await session.execute(query)
        """
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create tables directly from model metadata (development and tests)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """Perform database health check.

        Returns:
            bool: True if database is healthy, False otherwise
        """
        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except SQLAlchemyError as e:
            logger.error("Database health check failed", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        """Close database engine and clean up connections."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")
