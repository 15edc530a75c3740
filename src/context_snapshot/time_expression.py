"""Parse `--since` expressions into cutoff instants.

Two forms are accepted:

- relative shorthand: digits followed by ``m``, ``h``, ``d`` or ``w``
  (minutes, hours, days, weeks before now), case-insensitive;
- an ISO 8601 date or datetime, e.g. ``2024-01-15`` or ``2024-01-15T08:30:00+02:00``.

Naive values are read as UTC, so ``2024-01-15`` means midnight UTC.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

_RELATIVE_PATTERN = re.compile(r"^(?P<amount>\d+)(?P<unit>[mhdw])$", re.IGNORECASE)

_UNITS: dict[str, timedelta] = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

_MINUTES_PER_HOUR = 60
_HOURS_PER_DAY = 24
_DAYS_PER_WEEK = 7


def utcnow() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(instant: datetime) -> datetime:
    """Normalize a datetime to aware UTC, reading naive values as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def parse_time_expression(expr: str | None, now: datetime | None = None) -> datetime | None:
    """Turn a time expression into a UTC cutoff instant.

    Args:
        expr: relative shorthand (``"2h"``, ``"30m"``, ``"1d"``, ``"1w"``) or an ISO date string.
        now: reference instant for relative expressions; defaults to the current time.

    Returns:
        datetime | None: the cutoff, or None when the expression cannot be parsed.
    """
    if not expr:
        return None
    text = expr.strip()

    match = _RELATIVE_PATTERN.match(text)
    if match:
        reference = as_utc(now) if now is not None else utcnow()
        unit = _UNITS[match.group("unit").lower()]
        try:
            return reference - int(match.group("amount")) * unit
        except OverflowError:
            return None

    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def format_relative_time(instant: datetime, now: datetime | None = None) -> str:
    """Render how long ago `instant` was, e.g. ``"3h ago"``."""
    reference = as_utc(now) if now is not None else utcnow()
    minutes = int((reference - as_utc(instant)).total_seconds() // 60)

    if minutes < 1:
        return "just now"
    if minutes < _MINUTES_PER_HOUR:
        return f"{minutes}m ago"
    hours = minutes // _MINUTES_PER_HOUR
    if hours < _HOURS_PER_DAY:
        return f"{hours}h ago"
    days = hours // _HOURS_PER_DAY
    if days < _DAYS_PER_WEEK:
        return f"{days}d ago"
    return as_utc(instant).date().isoformat()
