"""
clock.py - Time sources for the trading engine

The engine reads two kinds of time:
- wall-clock time (datetime) for offer timestamps, escrow deadlines and the
  local calendar day that resets daily trade counters
- monotonic seconds for rate limiting, unaffected by wall-clock jumps

Classes:
- Clock: Protocol for both readings
- SystemClock: Real time
- ManualClock: Logical time that only moves when told to (tests, replays)
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional, Protocol, Union, runtime_checkable
import time


@runtime_checkable
class Clock(Protocol):

    def now(self) -> datetime:
        """Current local wall-clock time."""
        ...

    def monotonic(self) -> float:
        """Seconds from an arbitrary fixed origin, never decreasing."""
        ...


class SystemClock:
    """Real local time and time.monotonic()."""

    def now(self) -> datetime:
        return datetime.now()

    def monotonic(self) -> float:
        return time.monotonic()


class ManualClock:
    """
    Logical clock advanced explicitly by the caller.

    Time can only move forward, never backward. The monotonic reading is the
    number of seconds elapsed since the start time.

    Example:
        clock = ManualClock(datetime(2025, 1, 1, 12, 0))
        clock.advance(seconds=5)
        clock.monotonic()  # 5.0
    """

    def __init__(self, start: Optional[datetime] = None):
        self._start = start or datetime(2025, 1, 1)
        self._current = self._start

    def now(self) -> datetime:
        return self._current

    def monotonic(self) -> float:
        return (self._current - self._start).total_seconds()

    def advance(self, delta: Union[timedelta, float, None] = None, *, seconds: float = 0.0) -> datetime:
        """
        Move the clock forward by a timedelta, or by a number of seconds.

        Returns:
            The new current time

        Raises:
            ValueError: If the step is negative
        """
        if delta is None:
            step = timedelta(seconds=seconds)
        elif isinstance(delta, timedelta):
            step = delta
        else:
            step = timedelta(seconds=delta)
        if step < timedelta(0):
            raise ValueError(f"Cannot move time backwards: {step}")
        self._current += step
        return self._current

    def set(self, new_time: datetime) -> None:
        """Jump to an absolute time that is not before the current one."""
        if new_time < self._current:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._current}")
        self._current = new_time
