"""Shared pytest fixtures: in-memory SQL stores, a fake Redis and the API client."""

import asyncio
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import shortlink.models  # noqa: F401  (registers tables on Base.metadata)
from shortlink.cache import MappingCache
from shortlink.database import Base
from shortlink.dependencies import (
    get_event_producer,
    get_mapping_cache,
    get_mapping_store,
    get_resolver,
    get_stats_aggregator,
)
from shortlink.id_allocator import IdAllocator
from shortlink.kafka import EventProducer
from shortlink.main import app
from shortlink.mapping_store import MappingStore
from shortlink.resolver import MappingResolver
from shortlink.stats_aggregator import SqlStatsAggregator
from shortlink.stats_storage import SqlStatsStorage


class FakeRedis:
    """Dict-backed stand-in for the few ``redis.asyncio.Redis`` commands in use."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int | None] = {}

    async def get(self, name: str) -> str | None:
        return self.data.get(name)

    async def set(self, name: str, value, ex: int | None = None) -> bool:
        self.data[name] = str(value)
        self.expiry[name] = ex
        return True

    async def delete(self, *names: str) -> int:
        return sum(1 for name in names if self.data.pop(name, None) is not None)

    async def incr(self, name: str, amount: int = 1) -> int:
        # Yield first so concurrent callers interleave around the increment.
        await asyncio.sleep(0)
        value = int(self.data.get(name, 0)) + amount
        self.data[name] = str(value)
        return value

    async def ping(self) -> bool:
        return True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def mapping_store(session_factory) -> MappingStore:
    return MappingStore(session_factory)


@pytest.fixture
def mapping_cache(fake_redis: FakeRedis) -> MappingCache:
    return MappingCache(fake_redis)


@pytest_asyncio.fixture
async def resolver(mapping_store, mapping_cache, fake_redis) -> MappingResolver:
    allocator = await IdAllocator.create(fake_redis, mapping_store)
    return MappingResolver(mapping_store, mapping_cache, allocator)


@pytest.fixture
def event_producer() -> AsyncMock:
    return AsyncMock(spec=EventProducer)


@pytest.fixture
def stats_storage(session_factory) -> SqlStatsStorage:
    return SqlStatsStorage(session_factory)


@pytest_asyncio.fixture(scope="function")
async def client(
    resolver: MappingResolver,
    mapping_store: MappingStore,
    mapping_cache: MappingCache,
    event_producer: AsyncMock,
    session_factory,
) -> AsyncGenerator[AsyncClient, None]:
    aggregator = SqlStatsAggregator(session_factory)

    app.dependency_overrides[get_resolver] = lambda: resolver
    app.dependency_overrides[get_event_producer] = lambda: event_producer
    app.dependency_overrides[get_stats_aggregator] = lambda: aggregator
    app.dependency_overrides[get_mapping_store] = lambda: mapping_store
    app.dependency_overrides[get_mapping_cache] = lambda: mapping_cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
