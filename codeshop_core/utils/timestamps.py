"""Time helpers for captions and Discord timestamps."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ..constants import SECONDS_PER_HOUR, SECONDS_PER_MINUTE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def discord_timestamp(dt: datetime, style: str = "f") -> str:
    """Return Discord formatted timestamp."""
    if dt.tzinfo is None:
        aware = dt.replace(tzinfo=timezone.utc)
    else:
        aware = dt.astimezone(timezone.utc)
    return f"<t:{int(aware.timestamp())}:{style}>"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_age(age: timedelta | float) -> str:
    """
    Human-relative age such as "5 seconds ago" or "2 hours ago".

    Hours is the largest unit, so a day-old display reads "26 hours ago".
    """
    seconds = age.total_seconds() if isinstance(age, timedelta) else float(age)
    seconds = max(0, int(seconds))

    if seconds < SECONDS_PER_MINUTE:
        return f"{_plural(seconds, 'second')} ago"
    if seconds < SECONDS_PER_HOUR:
        return f"{_plural(seconds // SECONDS_PER_MINUTE, 'minute')} ago"
    return f"{_plural(seconds // SECONDS_PER_HOUR, 'hour')} ago"
