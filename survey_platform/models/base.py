"""
SQLAlchemy declarative base for Survey Platform models.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    SQLite hands back naive datetimes; they are stored in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    All models inherit from this base so a single metadata object
    drives create_all() in tests and autogenerate in Alembic.
    """

    pass
