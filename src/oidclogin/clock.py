"""Source of the current time."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from datetime import datetime

from safir.datetime import current_datetime

__all__ = ["Clock", "SystemClock"]


class Clock(metaclass=ABCMeta):
    """Supplies the current time for expiration and cache checks."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime."""


class SystemClock(Clock):
    """The wall clock, in UTC."""

    def now(self) -> datetime:
        return current_datetime(microseconds=True)
