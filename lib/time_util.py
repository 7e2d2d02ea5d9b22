from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from lib.constants import SECONDS_IN_HOUR


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def local_datetime(ts: datetime, utc_offset_seconds: Optional[int] = None) -> datetime:
    """Return *ts* in the site's local time.

    When no offset is known the host's local zone is used.
    """
    ts = ensure_utc(ts)
    if utc_offset_seconds is None:
        return ts.astimezone()
    return ts.astimezone(timezone(timedelta(seconds=utc_offset_seconds)))


def local_date(ts: datetime, utc_offset_seconds: Optional[int] = None) -> date:
    return local_datetime(ts, utc_offset_seconds).date()


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_IN_HOUR


def ms_to_timedelta(ms: int) -> timedelta:
    return timedelta(milliseconds=ms)


def at_hour(day: date, hour: int, tzinfo=None) -> datetime:
    """Return *day* at HH:00 in *tzinfo*."""
    return datetime.combine(day, time(hour=hour), tzinfo=tzinfo)


def longitude_offset_seconds(longitude: float) -> int:
    """Nominal UTC offset of a site from its longitude, 15° per hour."""
    return round(longitude / 15.0) * SECONDS_IN_HOUR
