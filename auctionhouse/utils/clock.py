"""
Clocks used by the engine.

All timestamps are float epoch seconds. Components take a ``clock``
callable so tests and the demo can drive time by hand.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    """Wall-clock time in epoch seconds."""
    return time.time()


class ManualClock:
    """
    A clock that only moves when told to.

    Thread-safe so the scheduler worker and test threads can share it.
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = float(start)
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        """Move time forward and return the new value."""
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, value: float) -> None:
        with self._lock:
            self._now = float(value)


def to_iso(timestamp: float) -> str:
    """Render an epoch timestamp as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
