"""
Clock abstraction.

Services read the current time through a Clock so tests can pin it.
Timestamps are naive local datetimes, matching the DateTime columns.
"""

from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    """
    Clock pinned to a given instant.

    Used in tests; `advance` moves it forward.
    """

    def __init__(self, current: datetime):
        self._current = current

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta) -> None:
        self._current = self._current + delta


system_clock = SystemClock()
