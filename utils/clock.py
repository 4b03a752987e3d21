"""Injectable "current time" capability.

Production code takes a Clock and defaults to SystemClock. Tests pass a
ManualClock so expiry can be asserted without sleeping.
"""

import threading
from datetime import datetime, timedelta
from typing import Protocol

from utils.timezone import now_utc, to_utc


class Clock(Protocol):
    """Anything that can report the current UTC time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Real wall clock (UTC)."""

    def now(self) -> datetime:
        return now_utc()


class ManualClock:
    """
    Deterministic clock for tests.

    Usage:
        clock = ManualClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        clock.advance(minutes=29, seconds=59)
    """

    def __init__(self, start: datetime | None = None):
        self._now = to_utc(start) if start is not None else now_utc()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = to_utc(value)

    def advance(self, **delta) -> datetime:
        """Move time forward by timedelta kwargs. Returns the new time."""
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now
