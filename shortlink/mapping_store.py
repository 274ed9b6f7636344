"""Durable token -> URL mappings stored in PostgreSQL.

The store is the source of truth for every mapping. Each operation opens its
own session from the injected factory, so one store instance is shared by all
requests and by the id allocator at startup.

Lookups distinguish a confirmed absence (``None``) from a failed read
(``StoreUnavailableError``); the redirect path turns the first into a 404 and
the second into a 500.
"""

import datetime
import logging

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.errors import DuplicateMappingError, StoreUnavailableError, TokenNotFoundError
from shortlink.models import MappingRecord
from shortlink.schemas import MappingInfo

__all__ = ["MappingStore"]

logger = logging.getLogger(__name__)

# asyncpg raises plain OSError subclasses when the server is unreachable.
_STORE_ERRORS = (SQLAlchemyError, OSError)


class MappingStore:
    """CRUD over the ``mappings`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_new_mapping(self, mapping_id: int, original_url: str, url_token: str) -> MappingInfo:
        """Insert a new mapping and return it with its server-assigned timestamps.

        Raises:
            DuplicateMappingError: If the id or token is already stored.
            StoreUnavailableError: If the database cannot be reached.
        """
        record = MappingRecord(id=mapping_id, original_url=original_url, url_token=url_token)
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
        except IntegrityError as exc:
            raise DuplicateMappingError(
                f"Mapping with id {mapping_id} or token {url_token} already exists"
            ) from exc
        except _STORE_ERRORS as exc:
            logger.error("Failed to insert mapping id=%s token=%s", mapping_id, url_token, exc_info=True)
            raise StoreUnavailableError(f"inserting mapping {url_token}") from exc
        return MappingInfo.model_validate(record)

    async def get_mapping_by_token(self, url_token: str) -> MappingInfo | None:
        try:
            async with self._session_factory() as session:
                record = await session.scalar(select(MappingRecord).where(MappingRecord.url_token == url_token))
        except _STORE_ERRORS as exc:
            logger.error("Failed to read mapping for token %s", url_token, exc_info=True)
            raise StoreUnavailableError(f"reading mapping {url_token}") from exc
        if record is None:
            return None
        return MappingInfo.model_validate(record)

    async def update_original_url(self, url_token: str, new_url: str) -> MappingInfo:
        """Replace the target URL of a mapping and bump ``updated_at`` in one statement.

        Raises:
            TokenNotFoundError: If no mapping has that token.
            StoreUnavailableError: If the database cannot be reached.
        """
        stmt = (
            update(MappingRecord)
            .where(MappingRecord.url_token == url_token)
            .values(original_url=new_url, updated_at=datetime.datetime.now(datetime.timezone.utc))
            .returning(MappingRecord)
        )
        try:
            async with self._session_factory() as session:
                record = (await session.execute(stmt)).scalar_one_or_none()
                await session.commit()
        except _STORE_ERRORS as exc:
            logger.error("Failed to update mapping for token %s", url_token, exc_info=True)
            raise StoreUnavailableError(f"updating mapping {url_token}") from exc
        if record is None:
            raise TokenNotFoundError(f"No mapping with token {url_token} found")
        return MappingInfo.model_validate(record)

    async def delete_mapping_info(self, url_token: str) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(MappingRecord).where(MappingRecord.url_token == url_token))
                await session.commit()
        except _STORE_ERRORS as exc:
            logger.error("Failed to delete mapping for token %s", url_token, exc_info=True)
            raise StoreUnavailableError(f"deleting mapping {url_token}") from exc
        if result.rowcount == 0:
            raise TokenNotFoundError(f"No mapping with token {url_token} found")

    async def get_last_id(self) -> int:
        """Highest stored mapping id, or 0 for an empty table."""
        try:
            async with self._session_factory() as session:
                last_id = await session.scalar(select(func.max(MappingRecord.id)))
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError("getting last mapping id") from exc
        if last_id is None:
            logger.info("No mappings stored yet, ids start from 0")
            return 0
        return last_id

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))
