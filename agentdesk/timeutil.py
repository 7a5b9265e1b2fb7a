"""Time helpers shared by the dashboard, pipeline and trash views."""

from datetime import date, datetime, timezone
from typing import Optional, Union

import pytz
from dateutil import parser as date_parser

from .config import get_config

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def get_timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    """Return the configured timezone, or ``name`` when given."""
    return pytz.timezone(name or get_config().timezone)


def to_local(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert a datetime to the configured timezone (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(get_timezone(tz_name))


def local_today(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    """Calendar date in the configured timezone."""
    return to_local(now or utc_now(), tz_name).date()


def parse_datetime(value: Union[str, datetime, date]) -> datetime:
    """
    Parse a user supplied timestamp into an aware UTC datetime.

    Accepts ISO strings and most human formats understood by dateutil.
    Plain dates become midnight UTC.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Invalid date: {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Union[str, date, datetime]) -> date:
    """Parse a calendar date (``YYYY-MM-DD`` or anything dateutil accepts)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(value).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid date: {value!r}") from e


def month_label(value: Union[date, datetime]) -> str:
    """Format as ``"January 2026"``."""
    return f"{MONTH_NAMES[value.month - 1]} {value.year}"
