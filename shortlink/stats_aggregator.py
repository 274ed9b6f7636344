"""Read-time aggregation of redirect statistics per token.

Every call scans the events of one token: a total plus four grouped counts
(country, city, device type, referrer). Nothing is cached or materialized.
A token without events is reported as ``TokenNotFoundError``, which cannot be
told apart from a token that exists but was never visited.
"""

import asyncio

from clickhouse_connect.driver.client import Client as ClickHouseClient
from clickhouse_connect.driver.exceptions import ClickHouseError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.errors import StatsStoreUnavailableError, TokenNotFoundError
from shortlink.models import StatsEventRecord
from shortlink.schemas import AggregateStats

__all__ = ["ClickHouseStatsAggregator", "SqlStatsAggregator"]

# AggregateStats field -> stats_events column
BREAKDOWN_COLUMNS = {
    "count_by_country": "country",
    "count_by_city": "city",
    "count_by_device_type": "device_type",
    "count_by_referrer": "referrer",
}


def _no_statistics(url_token: str) -> TokenNotFoundError:
    return TokenNotFoundError(f"No statistics found for url token: {url_token}")


class ClickHouseStatsAggregator:
    """Counts distinct ``event_id`` values so unmerged duplicates never inflate totals."""

    TOTAL_QUERY = "SELECT uniqExact(event_id) FROM stats_events WHERE url_token = {token:String}"
    BREAKDOWN_QUERY = (
        "SELECT {column}, uniqExact(event_id) FROM stats_events "
        "WHERE url_token = {{token:String}} GROUP BY {column}"
    )

    def __init__(self, client: ClickHouseClient) -> None:
        self._client = client

    async def _query(self, sql: str, url_token: str) -> list:
        try:
            result = await asyncio.to_thread(self._client.query, sql, parameters={"token": url_token})
        except (ClickHouseError, OSError) as exc:
            raise StatsStoreUnavailableError(f"aggregating statistics for {url_token}") from exc
        return result.result_rows

    async def calculate_statistics(self, url_token: str) -> AggregateStats:
        total_rows = await self._query(self.TOTAL_QUERY, url_token)
        total_clicks = int(total_rows[0][0]) if total_rows else 0
        if total_clicks == 0:
            raise _no_statistics(url_token)

        breakdowns = {}
        for field, column in BREAKDOWN_COLUMNS.items():
            rows = await self._query(self.BREAKDOWN_QUERY.format(column=column), url_token)
            breakdowns[field] = {value: int(count) for value, count in rows}

        return AggregateStats(url_token=url_token, total_clicks=total_clicks, **breakdowns)

    def close(self) -> None:
        self._client.close()


class SqlStatsAggregator:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def calculate_statistics(self, url_token: str) -> AggregateStats:
        token_filter = StatsEventRecord.url_token == url_token
        breakdowns = {}
        try:
            async with self._session_factory() as session:
                total_clicks = await session.scalar(
                    select(func.count()).select_from(StatsEventRecord).where(token_filter)
                )
                if not total_clicks:
                    raise _no_statistics(url_token)

                for field, column_name in BREAKDOWN_COLUMNS.items():
                    column = getattr(StatsEventRecord, column_name)
                    rows = await session.execute(
                        select(column, func.count()).where(token_filter).group_by(column)
                    )
                    breakdowns[field] = {value: count for value, count in rows}
        except (SQLAlchemyError, OSError) as exc:
            raise StatsStoreUnavailableError(f"aggregating statistics for {url_token}") from exc

        return AggregateStats(url_token=url_token, total_clicks=total_clicks, **breakdowns)
