#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixins for the session auth API.

- UUID primary key (String(36)) with defaults
- created_at timestamp, always timezone-aware UTC in Python

Notes:
- SQLite has no timezone-aware DATETIME; UTCDateTime normalizes values to UTC
  on the way in and re-attaches tzinfo on the way out so comparisons against
  datetime.now(timezone.utc) work on every backend.
- created_at is set Python-side so it is available right after commit
  without a refresh round-trip.
"""

from __future__ import annotations

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

# Declarative base for all models
Base = declarative_base()


def _uuid_str() -> str:
    """Return a canonical UUIDv4 string (36 chars, with hyphens)."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        value = as_utc(value)
        if value is not None and dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        return as_utc(value)


class BaseModel:
    """
    Base mixin for all persistent models.

    - id, created_at
    """

    id = Column(String(36), primary_key=True, default=_uuid_str, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)

    def __init__(self, *args, **kwargs):
        """
        Allow attribute initialization via kwargs without requiring a session.
        id and created_at are filled in eagerly so callers can read them before flush.
        """
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)
        if getattr(self, "id", None) is None:
            self.id = _uuid_str()
        if getattr(self, "created_at", None) is None:
            self.created_at = utcnow()

    def __str__(self) -> str:
        return f"[{self.__class__.__name__}] ({self.id})"
