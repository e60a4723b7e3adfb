"""
Test configuration and shared fixtures.

Provides a throwaway SQLite database per test, the record store on top of
it, and in-memory GitHub and Discord fakes wired into the engine.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from ptal_sync.database import DatabaseConfig, DatabaseConnectionManager
from ptal_sync.models import PtalRecord
from ptal_sync.ptal import (
    KeyedLock,
    Reconciler,
    RecordStore,
    RenderSettings,
)
from tests.fixtures.ptal import (
    ACME_WIDGETS_42,
    CHANNEL_ID,
    GUILD_ID,
    FakeChatSurface,
    FakePullRequestSource,
    make_pull_request,
)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """
    Why: Store tests need a real SQL backend without an external server
    What: Provides an aiosqlite URL for a file in the test's temp directory
    How: A file database lets concurrent sessions use separate connections
    """
    return f"sqlite+aiosqlite:///{tmp_path / 'ptal.db'}"


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncGenerator[DatabaseConnectionManager, None]:
    """Connection manager with the schema created from model metadata."""
    manager = DatabaseConnectionManager(DatabaseConfig(database_url=database_url))
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def store(database: DatabaseConnectionManager) -> RecordStore:
    return RecordStore(database)


@pytest.fixture
def pull_requests() -> FakePullRequestSource:
    """GitHub fake that already knows acme/widgets#42 with no reviews."""
    source = FakePullRequestSource()
    source.add(ACME_WIDGETS_42, make_pull_request(42))
    return source


@pytest.fixture
def chat() -> FakeChatSurface:
    return FakeChatSurface()


@pytest.fixture
def render_settings() -> RenderSettings:
    return RenderSettings()


@pytest.fixture
def reconciler(
    store: RecordStore,
    pull_requests: FakePullRequestSource,
    chat: FakeChatSurface,
    render_settings: RenderSettings,
) -> Reconciler:
    return Reconciler(
        store=store,
        pull_requests=pull_requests,
        chat=chat,
        settings=render_settings,
        locks=KeyedLock(),
        remote_timeout=2.0,
    )


@pytest_asyncio.fixture
async def record(store: RecordStore, chat: FakeChatSurface) -> PtalRecord:
    """A stored record for acme/widgets#42 whose message exists in the fake chat."""
    message_id = await chat.post_message(CHANNEL_ID, {"content": "placeholder"})
    record_id = await store.create(
        channel_id=CHANNEL_ID,
        message_id=message_id,
        owner=ACME_WIDGETS_42.owner,
        repository=ACME_WIDGETS_42.repository,
        pr_number=ACME_WIDGETS_42.pr_number,
        description="fix memory leak",
        guild_id=GUILD_ID,
    )
    stored = await store.get(record_id)
    assert stored is not None
    return stored
