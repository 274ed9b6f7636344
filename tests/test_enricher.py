"""Tests for device classification, geolocation and event enrichment."""

import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from geoip2.errors import AddressNotFoundError

from shortlink import enricher as enricher_module
from shortlink.enricher import UNKNOWN_LOCATION, EventEnricher, classify_device
from shortlink.enums import DeviceType
from shortlink.errors import LocationLookupError
from shortlink.geo import IpLocator, Location
from shortlink.schemas import RawStatsEvent

ANDROID_CHROME = (
    "Mozilla/5.0 (Linux; Android 10; SM-G973F) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/83.0.4103.106 Mobile Safari/537.36"
)
WINDOWS_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class FakeLocator:
    def __init__(self, location: Location | None = None, error: Exception | None = None) -> None:
        self.location = location
        self.error = error
        self.calls: list[str] = []

    def locate(self, ip: str) -> Location:
        self.calls.append(ip)
        if self.error is not None:
            raise self.error
        return self.location


def _raw_event(**overrides) -> RawStatsEvent:
    fields = {
        "event_id": "6f1c1a8e-0000-4000-8000-000000000001",
        "url_token": "b",
        "timestamp": datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc),
        "ip": "203.0.113.7",
        "user_agent": ANDROID_CHROME,
        "referrer": "https://news.example",
    }
    fields.update(overrides)
    return RawStatsEvent(**fields)


# ============================================================================
# DEVICE CLASSIFICATION
# ============================================================================


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (ANDROID_CHROME, DeviceType.MOBILE),
        (WINDOWS_CHROME, DeviceType.DESKTOP),
        (GOOGLEBOT, DeviceType.BOT),
        ("", DeviceType.UNKNOWN),
    ],
)
def test_classify_device(user_agent: str, expected: DeviceType) -> None:
    assert classify_device(user_agent) == expected


def test_classify_device_priority(monkeypatch) -> None:
    """Mobile wins over tablet, tablet over desktop, desktop over bot."""
    flags = {"is_mobile": False, "is_tablet": True, "is_pc": True, "is_bot": True}
    monkeypatch.setattr(enricher_module.user_agents, "parse", lambda ua: SimpleNamespace(**flags))
    assert classify_device("x") == DeviceType.TABLET

    flags.update(is_tablet=False)
    assert classify_device("x") == DeviceType.DESKTOP

    flags.update(is_pc=False)
    assert classify_device("x") == DeviceType.BOT

    flags.update(is_bot=False)
    assert classify_device("x") == DeviceType.UNKNOWN


# ============================================================================
# GEOLOCATION
# ============================================================================


class TestIpLocator:
    def test_locate(self) -> None:
        reader = MagicMock()
        reader.city.return_value = SimpleNamespace(
            country=SimpleNamespace(name="Germany"),
            city=SimpleNamespace(name="Berlin"),
        )

        assert IpLocator(reader).locate("203.0.113.7") == Location("Germany", "Berlin")
        reader.city.assert_called_once_with("203.0.113.7")

    def test_locate_address_not_found(self) -> None:
        reader = MagicMock()
        reader.city.side_effect = AddressNotFoundError("The address 10.0.0.1 is not in the database.")

        with pytest.raises(LocationLookupError):
            IpLocator(reader).locate("10.0.0.1")

    def test_locate_malformed_ip(self) -> None:
        reader = MagicMock()
        reader.city.side_effect = ValueError("'' does not appear to be an IPv4 or IPv6 address")

        with pytest.raises(LocationLookupError):
            IpLocator(reader).locate("")

    def test_close(self) -> None:
        reader = MagicMock()
        IpLocator(reader).close()
        reader.close.assert_called_once_with()


# ============================================================================
# ENRICHMENT
# ============================================================================


class TestEventEnricher:
    def test_enrich_copies_identity_and_adds_dimensions(self) -> None:
        locator = FakeLocator(Location("USA", "New York"))
        raw = _raw_event()

        event = EventEnricher(locator).enrich(raw)

        assert locator.calls == ["203.0.113.7"]
        assert event.event_id == raw.event_id
        assert event.url_token == "b"
        assert event.timestamp == raw.timestamp
        assert event.country == "USA"
        assert event.city == "New York"
        assert event.device_type == DeviceType.MOBILE
        assert event.referrer == "https://news.example"

    def test_lookup_failure_falls_back_to_unknown(self) -> None:
        locator = FakeLocator(error=LocationLookupError("locating ip ''"))

        event = EventEnricher(locator).enrich(_raw_event(ip="", user_agent=WINDOWS_CHROME))

        assert event.country == UNKNOWN_LOCATION
        assert event.city == UNKNOWN_LOCATION
        assert event.device_type == DeviceType.DESKTOP

    def test_missing_names_fall_back_to_unknown(self) -> None:
        locator = FakeLocator(Location("USA", None))

        event = EventEnricher(locator).enrich(_raw_event())

        assert event.country == "USA"
        assert event.city == "Unknown"

    def test_unrecognised_agent(self) -> None:
        event = EventEnricher(FakeLocator(Location("USA", "Boston"))).enrich(_raw_event(user_agent=""))
        assert event.device_type == DeviceType.UNKNOWN
