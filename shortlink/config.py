"""Runtime settings for the API process and the stats worker.

Values resolve in this order, first match wins:

::
    process environment  ─┐
    .env file            ─┼─► Settings() ─► lru_cache ─► get_settings()
    class defaults       ─┘

Both processes read the same settings; the worker only uses the Kafka,
consumer, analytics store and geolocation groups.

Key Behaviours
===============
- Field names are upper case and match the environment variable exactly.
- ``CACHE_TTL_SECONDS`` bounds how long a cache entry refilled by a racing
  read can outlive an update or delete; ``0`` disables expiry.
- ``STATS_BACKEND`` selects where enriched redirect events are stored and
  aggregated (``clickhouse`` or ``sql``).
- ``CONSUMER_ENABLED=false`` leaves consumption to ``python -m shortlink.worker``.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from shortlink.enums import StatsBackend


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False

    # Redis (id counter + mapping cache)
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0
    ID_COUNTER_KEY: str = "mapping_count"
    CACHE_KEY_PREFIX: str = "url:"
    CACHE_TTL_SECONDS: int = 3600

    # Kafka stats bus
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_STATS_TOPIC: str = "url_stats_events"
    KAFKA_CONSUMER_GROUP: str = "url_stats_group"
    KAFKA_PRODUCER_LINGER_MS: int = 10

    # Consumer loop
    CONSUMER_ENABLED: bool = True
    CONSUMER_POLL_TIMEOUT_MS: int = 1000
    CONSUMER_MAX_RECORDS: int = 100
    CONSUMER_RETRY_DELAY_SECONDS: float = 1.0
    WORKER_METRICS_PORT: int = 9200

    # Analytics store
    STATS_BACKEND: StatsBackend = StatsBackend.CLICKHOUSE
    CLICKHOUSE_URL: str = "http://clickhouse:8123"
    CLICKHOUSE_USERNAME: str = "default"
    CLICKHOUSE_PASSWORD: str = "clickhouse"
    CLICKHOUSE_DATABASE: str = "url_shortener_analytics"

    # Geolocation
    GEOIP_DB_PATH: str = "assets/GeoLite2-City.mmdb"
    GEOIP_LOCALE: str = "en"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
