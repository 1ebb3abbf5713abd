"""
Injectable time source.

Anything that compares against "now" (the SLA clock, schedule due-status,
transition timestamps) takes a zero-argument callable returning an aware
datetime instead of reading the wall clock itself.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Production clock: current UTC wall-clock time."""
    return datetime.now(timezone.utc)


class FixedClock:
    """
    Test clock pinned to a given instant.

    Time only moves when ``advance`` or ``set`` is called.
    """

    def __init__(self, at: datetime):
        self._now = ensure_utc(at)

    def __call__(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by ``timedelta(**kwargs)``."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, at: datetime) -> datetime:
        self._now = ensure_utc(at)
        return self._now


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
