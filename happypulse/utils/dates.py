# happypulse/utils/dates.py
"""
UTC day-bucket helpers.

Streaks, per-day uniqueness and daily series all use the UTC-midnight bucket.
Datetimes are stored naive and interpreted as UTC.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def day_start(day: date) -> datetime:
    return datetime(day.year, day.month, day.day)


def day_bucket(moment: datetime) -> date:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.date()


def iter_days(start: date, end: date) -> Iterator[date]:
    """Inclusive range of day buckets."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def normalize_range(
    start: Optional[datetime],
    end: Optional[datetime],
    default_days: int = 30,
) -> Tuple[datetime, datetime]:
    """Turn optional query bounds into a concrete naive-UTC [start, end] pair."""
    if end is None:
        end = utcnow()
    elif end.tzinfo is not None:
        end = end.astimezone(timezone.utc).replace(tzinfo=None)
    if start is None:
        start = day_start(end.date() - timedelta(days=default_days))
    elif start.tzinfo is not None:
        start = start.astimezone(timezone.utc).replace(tzinfo=None)
    return start, end


def iso_week_key(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"
