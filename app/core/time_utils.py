# app/core/time_utils.py
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from app.core.config import get_settings


def utcnow() -> datetime:
    """Server-side 'now' (UTC, tz-aware)."""
    return datetime.now(timezone.utc)


def local_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().TIMEZONE)


def local_date(dt: datetime) -> date:
    """
    Calendar day of `dt` in the business timezone.

    Naive datetimes are treated as UTC (SQLite hands stored timestamps back
    without tzinfo).
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(local_tz()).date()


def local_today() -> date:
    return utcnow().astimezone(local_tz()).date()
