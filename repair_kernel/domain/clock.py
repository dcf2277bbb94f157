"""
Injectable time source.

Services stamp ``state_changed_at``, ``finalized_at``, ``closed_at`` and the
work timestamps from a ``Clock`` they were given; the lifecycle engine gets
``now`` as an argument. Nothing in the core calls ``datetime.now()`` except
``SystemClock``.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta

DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """Stands still until moved with ``advance`` or ``set_time``."""

    def __init__(self, start: datetime = DEFAULT_START):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set_time(self, time: datetime) -> None:
        self._now = time

    def advance(self, seconds: int = 1) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now
