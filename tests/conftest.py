"""Shared test fixtures for all test groups."""

import pytest
from fakeredis import aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from datapod.core.config import Settings
from datapod.db.base import Base
from datapod.dispatch.fake import InMemoryDispatcher
from datapod.dispatch.registry import ExecutorRegistry
from datapod.events.log_fake import InMemoryEventLog
from datapod.events.log_sql import SqlEventLog
from datapod.services.container import ServiceContainer


@pytest.fixture
async def engine():
    """In-memory SQLite engine with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Import all models so metadata is populated
    import datapod.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def redis_client():
    """Create a fake Redis client for testing."""
    client = aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        dispatch_max_attempts=3,
        dispatch_backoff_seconds=0.0,
        dispatch_max_backoff_seconds=0.0,
        dispatch_publish_retries=3,
    )


@pytest.fixture
def memory_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def sql_log(session_factory) -> SqlEventLog:
    return SqlEventLog(session_factory)


@pytest.fixture
def dispatcher() -> InMemoryDispatcher:
    """Dispatcher that records sends and runs executors inline on drain()."""
    return InMemoryDispatcher(ExecutorRegistry())


@pytest.fixture
def container(session_factory, settings, dispatcher, sql_log) -> ServiceContainer:
    """Fully wired core over SQLite and the in-memory dispatcher."""
    return ServiceContainer.build(
        session_factory,
        settings=settings,
        dispatcher=dispatcher,
        registry=dispatcher.registry,
        event_log=sql_log,
    )


def workspace_factory(container: ServiceContainer):
    """Factory: workspace ``workspace_id`` owned by ``owner`` with extra members."""

    async def create(workspace_id: str = "w1", owner: str = "owner-1", members: dict | None = None, settings=None):
        await container.deps.workspaces.create(
            {"name": "Team", "type": "team", "settings": settings or {}},
            owner,
            row_id=workspace_id,
        )
        for user_id, role in (members or {}).items():
            await container.members.add(workspace_id, user_id, role, owner)
        return workspace_id

    return create


@pytest.fixture
def team_workspace(container):
    return workspace_factory(container)


@pytest.fixture
def memory_container(session_factory, settings, dispatcher, memory_log) -> ServiceContainer:
    """Wired core over the in-memory event log, for log outage tests."""
    return ServiceContainer.build(
        session_factory,
        settings=settings,
        dispatcher=dispatcher,
        registry=dispatcher.registry,
        event_log=memory_log,
    )


@pytest.fixture
def memory_workspace(memory_container):
    return workspace_factory(memory_container)
