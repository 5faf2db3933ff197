"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import date, datetime, time, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def start_of_day(day: Optional[date]) -> Optional[datetime]:
    """Midnight UTC at the start of ``day``."""
    if day is None:
        return None
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(day: Optional[date]) -> Optional[datetime]:
    """Last representable instant of ``day`` in UTC."""
    if day is None:
        return None
    return datetime.combine(day, time.max, tzinfo=timezone.utc)
