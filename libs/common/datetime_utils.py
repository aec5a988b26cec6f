"""Datetime utilities for timezone-aware timestamps.

All timestamps are stored in UTC. The academy's calendar day (used by the
email daily cap and ``scheduled_for`` dates) is defined by ``Settings.TIMEZONE``.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from libs.common.config import get_settings


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def local_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().TIMEZONE)


def local_today(now: Optional[datetime] = None) -> date:
    """Current calendar date in the academy's timezone."""
    now = now or utc_now()
    return now.astimezone(local_tz()).date()


def local_day_bounds_utc(
    day: Optional[date] = None,
) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` of a local calendar day, expressed in UTC."""
    day = day or local_today()
    tz = local_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes read back from the store as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
