"""
Time sources for the auction.

All phase gating is computed from ``Clock.now()`` on every call, so swapping
the clock is enough to drive the auction through its phases in tests and
from the CLI.
"""

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that reports the current unix time in whole seconds."""

    def now(self) -> int:
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: int = 0):
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = int(timestamp)

    def advance(self, seconds: int) -> int:
        self._now += int(seconds)
        return self._now
