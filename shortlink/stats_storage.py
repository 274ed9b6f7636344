"""Append-only storage of enriched redirect events.

Two backends share the ``add_stats_event`` contract:

- ``ClickHouseStatsStorage`` (default): ``stats_events`` is a
  ``ReplacingMergeTree`` keyed by ``(url_token, event_id)``.
- ``SqlStatsStorage``: the ``stats_events`` table in the mappings database,
  with ``event_id`` as primary key.

Both keep redelivered events from being counted twice: the SQL table rejects
the duplicate row and ClickHouse aggregates over distinct ``event_id`` values.
"""

import asyncio
import logging
from urllib.parse import urlsplit

import clickhouse_connect
from clickhouse_connect.driver.client import Client as ClickHouseClient
from clickhouse_connect.driver.exceptions import ClickHouseError
from prometheus_client import Counter
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.config import Settings
from shortlink.errors import StatsStoreUnavailableError
from shortlink.models import StatsEventRecord
from shortlink.schemas import EnrichedStatsEvent

__all__ = [
    "STATS_EVENTS_TABLE_DDL",
    "ClickHouseStatsStorage",
    "SqlStatsStorage",
    "create_clickhouse_client",
]

logger = logging.getLogger(__name__)

STATS_EVENTS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS stats_events (
    event_id String,
    url_token String,
    timestamp DateTime64(3, 'UTC'),
    country String,
    city String,
    device_type LowCardinality(String),
    referrer String
) ENGINE = ReplacingMergeTree
ORDER BY (url_token, event_id)
"""

STATS_EVENT_COLUMNS = ["event_id", "url_token", "timestamp", "country", "city", "device_type", "referrer"]

STATS_ROWS_STORED_TOTAL = Counter(
    "shortlink_stats_rows_stored_total",
    "Enriched redirect events written to the stats store",
    ["backend"],
)
STATS_ROWS_DUPLICATE_TOTAL = Counter(
    "shortlink_stats_rows_duplicate_total",
    "Redelivered redirect events already present in the stats store",
)


def create_clickhouse_client(settings: Settings) -> ClickHouseClient:
    """Client safe to share across ``asyncio.to_thread`` workers.

    Without a session id each request is stateless, so inserts from the
    consumer and stats queries from the API can overlap on one pooled client.
    """
    url = urlsplit(settings.CLICKHOUSE_URL)
    return clickhouse_connect.get_client(
        host=url.hostname or "localhost",
        port=url.port or 8123,
        username=settings.CLICKHOUSE_USERNAME,
        password=settings.CLICKHOUSE_PASSWORD,
        database=settings.CLICKHOUSE_DATABASE,
        autogenerate_session_id=False,
    )


class ClickHouseStatsStorage:
    """Writes stats rows with the synchronous ClickHouse client off the event loop."""

    def __init__(self, client: ClickHouseClient) -> None:
        self._client = client

    async def ensure_schema(self) -> None:
        try:
            await asyncio.to_thread(self._client.command, STATS_EVENTS_TABLE_DDL)
        except (ClickHouseError, OSError) as exc:
            raise StatsStoreUnavailableError("creating stats_events table") from exc

    async def add_stats_event(self, event: EnrichedStatsEvent) -> None:
        row = [
            event.event_id,
            event.url_token,
            event.timestamp,
            event.country,
            event.city,
            event.device_type.value,
            event.referrer,
        ]
        try:
            await asyncio.to_thread(
                self._client.insert,
                table="stats_events",
                data=[row],
                column_names=STATS_EVENT_COLUMNS,
            )
        except (ClickHouseError, OSError) as exc:
            raise StatsStoreUnavailableError(f"storing stats event {event.event_id}") from exc
        STATS_ROWS_STORED_TOTAL.labels(backend="clickhouse").inc()

    def close(self) -> None:
        self._client.close()


class SqlStatsStorage:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_stats_event(self, event: EnrichedStatsEvent) -> None:
        record = StatsEventRecord(
            event_id=event.event_id,
            url_token=event.url_token,
            timestamp=event.timestamp,
            country=event.country,
            city=event.city,
            device_type=event.device_type.value,
            referrer=event.referrer,
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
        except IntegrityError:
            STATS_ROWS_DUPLICATE_TOTAL.inc()
            logger.info("Stats event %s already stored, skipping", event.event_id)
            return
        except (SQLAlchemyError, OSError) as exc:
            raise StatsStoreUnavailableError(f"storing stats event {event.event_id}") from exc
        STATS_ROWS_STORED_TOTAL.labels(backend="sql").inc()
