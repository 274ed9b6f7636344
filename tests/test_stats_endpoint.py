"""Stats endpoint behavior tests."""

import datetime

import pytest
from httpx import AsyncClient

from shortlink.enums import DeviceType
from shortlink.schemas import EnrichedStatsEvent


def _event(event_id: str, country: str, device_type: DeviceType = DeviceType.DESKTOP) -> EnrichedStatsEvent:
    return EnrichedStatsEvent(
        event_id=event_id,
        url_token="b",
        timestamp=datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc),
        country=country,
        city="Unknown",
        device_type=device_type,
        referrer="",
    )


@pytest.mark.asyncio
async def test_stats_valid_token(client: AsyncClient, stats_storage) -> None:
    await stats_storage.add_stats_event(_event("e1", "USA", DeviceType.MOBILE))
    await stats_storage.add_stats_event(_event("e2", "USA"))
    await stats_storage.add_stats_event(_event("e3", "Germany"))

    response = await client.get("/shorten/b/stats")
    assert response.status_code == 200
    data = response.json()
    assert data["url_token"] == "b"
    assert data["total_clicks"] == 3
    assert data["count_by_country"] == {"USA": 2, "Germany": 1}
    assert data["count_by_device_type"] == {"Mobile": 1, "Desktop": 2}
    assert data["count_by_city"] == {"Unknown": 3}
    assert data["count_by_referrer"] == {"": 3}


@pytest.mark.asyncio
async def test_stats_without_events(client: AsyncClient) -> None:
    response = await client.get("/shorten/nonexistent/stats")
    assert response.status_code == 404
