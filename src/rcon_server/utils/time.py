"""Timezone helpers and the retention cutoff calculation."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

Clock = Callable[[], datetime]

# Monday -> back to Friday, Sunday -> back to Friday, Saturday -> Friday.
_DAYS_BACK = {0: 3, 6: 2}


class Time:
    """Static helpers for datetime normalization."""

    @staticmethod
    def utcnow() -> datetime:
        """Timezone-aware UTC now. The default Clock."""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """Ensure a datetime is UTC-aware. SQLite may strip timezone info."""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt

    @staticmethod
    def isoformat(dt: datetime | None) -> str | None:
        """ISO-8601 string in UTC, or None."""
        return Time.ensure_utc(dt).isoformat() if dt is not None else None

    @staticmethod
    def previous_business_day(now: datetime) -> datetime:
        """Midnight (UTC) of the most recent business day before ``now``.

        Weekends are skipped: Monday and Sunday both map to the preceding
        Friday, every other day maps to the day before.
        """
        now = Time.ensure_utc(now).astimezone(timezone.utc)
        days_back = _DAYS_BACK.get(now.weekday(), 1)
        previous = now - timedelta(days=days_back)
        return previous.replace(hour=0, minute=0, second=0, microsecond=0)
