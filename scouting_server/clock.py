"""Time source shared by the webhook path and the expiry sweep.

Timestamps are stored naive in UTC, so every clock hands out naive UTC.
"""

import abc
from datetime import datetime, timezone


class Clock(abc.ABC):
    @abc.abstractmethod
    def now(self) -> datetime:
        """Current naive UTC time."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, delta) -> None:
        self.current = self.current + delta


system_clock = SystemClock()


def utcnow() -> datetime:
    return system_clock.now()
