"""Local calendar-day helpers.

A "day" is always a calendar date in the scope's timezone, so midnight
boundaries follow the learner rather than the server.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo


def local_date(ts: datetime, tz: tzinfo = timezone.utc) -> date:
    """Calendar date of ``ts`` in ``tz``. Naive timestamps are taken as UTC."""
    return ensure_aware(ts).astimezone(tz).date()


def day_start(day: date, tz: tzinfo = timezone.utc) -> datetime:
    """Local midnight at the start of ``day``, as an aware datetime."""
    return datetime.combine(day, time.min, tzinfo=tz)


def day_bounds(day: date, tz: tzinfo = timezone.utc) -> tuple[datetime, datetime]:
    """Half-open [start, end) bounds of ``day``."""
    start = day_start(day, tz)
    return start, day_start(day + timedelta(days=1), tz)


def ensure_aware(ts: datetime) -> datetime:
    """Attach UTC to naive timestamps; aware ones are returned unchanged."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts
