"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()``, so every
approval stamp, read receipt and audit ``occurred_at`` can be pinned in
tests. ``SystemClock`` is the only place the kernel reads wall time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time only moves when ``advance``, ``tick`` or ``set_time`` is called,
    so two reads within one step see the same instant.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_TEST_EPOCH

    def now(self) -> datetime:
        return self._current

    def set_time(self, when: datetime) -> None:
        if when.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        self._current = when

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current

    def tick(self) -> datetime:
        return self.advance(1)
