"""Timezone-aware UTC timestamp utilities and the injectable clock.

All backend code should use these helpers instead of datetime.utcnow()
or datetime.now(). Components that make time-based decisions (token
expiry, password expiration, audit timestamps) take a Clock so tests can
pin "now" with FixedClock.
"""

import threading
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol


def now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(iso_str: str) -> datetime:
    """Parse an ISO timestamp, assuming UTC if no timezone info."""
    dt = datetime.fromisoformat(iso_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(value) -> Optional[date]:
    """Parse a stored YYYY-MM-DD value. None and empty strings mean no date."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return now()

    def today(self) -> date:
        return now().date()


class FixedClock:
    """A clock that only moves when told to. Thread-safe."""

    def __init__(self, at: datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        self._at = at
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._at

    def today(self) -> date:
        return self.now().date()

    def set(self, at: datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        with self._lock:
            self._at = at

    def advance(self, **kwargs):
        """Move forward by a timedelta built from kwargs (seconds=, hours=, days=)."""
        with self._lock:
            self._at = self._at + timedelta(**kwargs)
