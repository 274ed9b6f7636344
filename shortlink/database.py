"""SQLAlchemy async engine and session factory for the mappings database.

The session factory is shared by ``MappingStore`` and, when
``STATS_BACKEND=sql``, by the SQL stats storage and aggregator.

Schema Bootstrap
================
::
    lifespan / worker startup
            │
            ▼
    ┌───────────────┐    imports shortlink.models so that
    │  init_db()    │──► mappings and stats_events are
    └───────┬───────┘    registered on Base.metadata
            ▼
    CREATE TABLE IF NOT EXISTS ...
            │
            ▼
    serve requests (async_session per store call)
            │
            ▼
    ┌───────────────┐
    │  close_db()   │──► engine.dispose()
    └───────────────┘

Sessions are opened per store call with ``async with async_session()`` and do
not expire attributes on commit, so records stay readable after the session
closes. ``pool_pre_ping`` drops connections the server has closed.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlink.config import get_settings

__all__ = ["Base", "async_session", "engine", "init_db", "close_db"]

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    import shortlink.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
