"""
Date utility functions for the application.
"""
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Denver"


def get_business_timezone(name: Optional[str] = None):
    """
    Get the timezone the business operates in.

    Args:
        name: IANA timezone name (defaults to Mountain Time)

    Returns:
        ZoneInfo: timezone object
    """
    return ZoneInfo(name or DEFAULT_TIMEZONE)


def business_today(tz_name: Optional[str] = None) -> date:
    """Return today's calendar date in the business timezone."""
    return datetime.now(timezone.utc).astimezone(get_business_timezone(tz_name)).date()


def parse_iso_date(value) -> Optional[date]:
    """
    Leniently parse a calendar date.

    Accepts date, datetime (date part) or an ISO string; only the first ten
    characters of a string are considered, so "2025-03-04T12:00:00Z" works.

    Returns:
        date or None if the value is empty or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()[:10]
        if not text:
            return None
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    return None


def to_naive_utc(dt: datetime) -> datetime:
    """Drop tzinfo after converting to UTC; naive values are assumed UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value) -> Optional[datetime]:
    """
    Leniently parse a timestamp (datetime, ISO string or epoch milliseconds).

    Returns:
        naive UTC datetime, or None if the value is empty or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            return to_naive_utc(datetime.fromisoformat(value.strip().replace('Z', '+00:00')))
        except ValueError:
            return None
    return None


def parse_month(value: Optional[str]) -> Optional[date]:
    """Parse 'YYYY-MM' (or a full ISO date) into the first day of that month."""
    if not value:
        return None
    text = str(value).strip()
    if len(text) == 7:
        text = f"{text}-01"
    parsed = parse_iso_date(text)
    if parsed is None:
        return None
    return parsed.replace(day=1)
