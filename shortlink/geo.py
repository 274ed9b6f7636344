"""IP geolocation backed by a local MaxMind GeoLite2-City database."""

import logging
from typing import NamedTuple

import geoip2.database
from geoip2.errors import GeoIP2Error

from shortlink.errors import LocationLookupError

__all__ = ["IpLocator", "Location"]

logger = logging.getLogger(__name__)


class Location(NamedTuple):
    country: str | None
    city: str | None


class IpLocator:
    """Thin wrapper around a ``geoip2`` reader.

    The ``.mmdb`` file is opened once and memory-mapped; lookups are
    synchronous and do not touch the network.
    """

    def __init__(self, reader: geoip2.database.Reader) -> None:
        self._reader = reader

    @classmethod
    def open(cls, path: str, locale: str = "en") -> "IpLocator":
        logger.info("Opening GeoIP database %s", path)
        return cls(geoip2.database.Reader(path, locales=[locale]))

    def locate(self, ip: str) -> Location:
        try:
            response = self._reader.city(ip)
        except (GeoIP2Error, ValueError) as exc:
            raise LocationLookupError(f"locating ip {ip!r}") from exc
        return Location(country=response.country.name, city=response.city.name)

    def close(self) -> None:
        self._reader.close()
