"""Exception hierarchy for the shortlink service.

Four families map onto HTTP outcomes in the route layer::

    ShortlinkError
    ├─ InvalidInputError   -> 400
    │  └─ InvalidUrlError
    ├─ NotFoundError       -> 404
    │  ├─ UrlNotFoundError
    │  └─ TokenNotFoundError
    ├─ AlreadyExistsError  -> 500 (never expected from the HTTP surface)
    │  └─ DuplicateMappingError
    └─ UnavailableError    -> 500
       ├─ StoreUnavailableError
       ├─ CacheUnavailableError
       ├─ CounterUnavailableError
       ├─ EventBusUnavailableError
       ├─ StatsStoreUnavailableError
       └─ LocationLookupError

Infrastructure exceptions are wrapped at component boundaries with
``raise ... from exc`` so the original cause stays on the traceback.
"""

__all__ = [
    "ShortlinkError",
    "InvalidInputError",
    "InvalidUrlError",
    "NotFoundError",
    "UrlNotFoundError",
    "TokenNotFoundError",
    "AlreadyExistsError",
    "DuplicateMappingError",
    "UnavailableError",
    "StoreUnavailableError",
    "CacheUnavailableError",
    "CounterUnavailableError",
    "EventBusUnavailableError",
    "StatsStoreUnavailableError",
    "LocationLookupError",
]


class ShortlinkError(Exception):
    """Base class for every error raised by shortlink components."""


class InvalidInputError(ShortlinkError, ValueError):
    pass


class InvalidUrlError(InvalidInputError):
    pass


class NotFoundError(ShortlinkError):
    pass


class UrlNotFoundError(NotFoundError):
    pass


class TokenNotFoundError(NotFoundError):
    pass


class AlreadyExistsError(ShortlinkError):
    pass


class DuplicateMappingError(AlreadyExistsError):
    pass


class UnavailableError(ShortlinkError):
    """A downstream dependency could not be reached or failed mid-operation."""


class StoreUnavailableError(UnavailableError):
    pass


class CacheUnavailableError(UnavailableError):
    pass


class CounterUnavailableError(UnavailableError):
    pass


class EventBusUnavailableError(UnavailableError):
    pass


class StatsStoreUnavailableError(UnavailableError):
    pass


class LocationLookupError(UnavailableError):
    pass
