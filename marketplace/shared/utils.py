"""Shared utility functions."""

from __future__ import annotations

from datetime import date, datetime, time, timezone


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize datetime to UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def combine_utc(day: date, at: time) -> datetime:
    """Build aware UTC datetime from a calendar date and wall-clock time."""
    return ensure_utc(datetime.combine(day, at))
