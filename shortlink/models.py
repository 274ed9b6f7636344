"""SQLAlchemy ORM models for the shortlink service.

Data Model Layout
=================
::
    mappings table
    ├─ id (BIGINT PRIMARY KEY, allocated by IdAllocator, never reused)
    ├─ original_url (TEXT NOT NULL)
    ├─ url_token (VARCHAR(16) UNIQUE, INDEXED, derived from id)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), bumped on every update)

    stats_events table (SQL stats backend only)
    ├─ event_id (VARCHAR(36) PRIMARY KEY, dedup key per redirect)
    ├─ url_token (VARCHAR(16), INDEXED)
    ├─ timestamp (TIMESTAMPTZ)
    ├─ country, city, device_type, referrer (TEXT)

Key Behaviours
===============
- ``id`` is assigned by the application, never by a database sequence.
- ``url_token`` is immutable once written; only ``original_url`` and ``updated_at`` change.
- ``stats_events`` rows are append-only; a duplicate ``event_id`` is rejected by the primary key.

Classes:
    MappingRecord:  Durable token -> URL mapping.
    StatsEventRecord:  Enriched redirect event fact row.
"""

import datetime

from sqlalchemy import BigInteger, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base

__all__ = ["MappingRecord", "StatsEventRecord"]


class MappingRecord(Base):
    __tablename__ = "mappings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    url_token: Mapped[str] = mapped_column(String(16), unique=True, index=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<MappingRecord(id={self.id}, url_token='{self.url_token}')>"


class StatsEventRecord(Base):
    __tablename__ = "stats_events"

    event_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    url_token: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    timestamp: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    country: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(Text, nullable=False)
    device_type: Mapped[str] = mapped_column(String(16), nullable=False)
    referrer: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<StatsEventRecord(event_id='{self.event_id}', url_token='{self.url_token}')>"
