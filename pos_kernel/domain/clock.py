"""
Clock -- time source for order creation.

Order creation stamps and the millisecond local order ids derived from them
come from an injected Clock, never from ``datetime.now()`` directly, so a
test can pin every id the lifecycle manager hands out.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` returns a timezone-aware ``datetime``."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Terminal wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock frozen at ``fixed_time`` until advanced.

    Args:
        fixed_time: Starting instant (default 2024-01-01 12:00 UTC)
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, milliseconds: int = 1) -> datetime:
        """Move forward and return the new time."""
        self._current = self._current + timedelta(milliseconds=milliseconds)
        return self._current
