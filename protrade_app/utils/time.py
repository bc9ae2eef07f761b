"""
Clock abstraction and time helpers.

Every time-dependent decision (lock TTLs, duplicate windows, daily caps,
hold duration) reads the current time from a Clock instance.
"""

import threading
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


class Clock:
    """Source of the current time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Manually advanced clock, used for replays and tests."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **delta) -> datetime:
        """Move the clock forward by a timedelta expressed as keyword arguments."""
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = value


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Resolve a configured timezone name; None means the system local zone."""
    if not name:
        return None
    return ZoneInfo(name)


def local_date_key(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    """
    Calendar date of a moment in the given zone (system local zone if None).

    Args:
        moment: Timezone-aware datetime
        tz: Target timezone

    Returns:
        Local calendar date used for daily counters
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def elapsed_seconds(start_time: datetime, end_time: datetime) -> float:
    """Elapsed seconds between two timestamps."""
    return (end_time - start_time).total_seconds()


def epoch_millis(moment: datetime) -> int:
    """Milliseconds since the epoch, used in signal ids."""
    return int(moment.timestamp() * 1000)


def format_timestamp(moment: Optional[datetime]) -> Optional[str]:
    """ISO8601 representation for serialization and logging."""
    return moment.isoformat() if moment is not None else None
