"""Datetime helpers for stored timestamps."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pendulum


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a stored timestamp into a timezone-aware datetime.

    Accepts ISO 8601 variants with or without a ``T`` separator and with or
    without an offset. A missing timezone defaults to ``default_tz``.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    parsed = pendulum.parse(value.strip(), tz=default_tz, strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for date-only strings
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz=default_tz  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for storage and JSON serialization."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def is_due(last_sync_at: str | None, frequency_minutes: int, now: datetime) -> bool:
    """Return True when a sync with the given frequency should run at ``now``.

    A project that was never synced, or whose stored timestamp cannot be
    parsed, is always due.
    """
    if not last_sync_at:
        return True
    try:
        last = parse_datetime(last_sync_at)
    except ValueError:
        return True
    return last + timedelta(minutes=max(frequency_minutes, 1)) <= now
