# File: src/parking_ledger/infrastructure/clock.py
"""
Time sources for the Parking Ledger

Both satisfy the domain ``Clock`` protocol: ``now()`` returns integer
milliseconds since the epoch.
"""

import time


class SystemClock:
    """Wall clock in milliseconds"""

    def now(self) -> int:
        return time.time_ns() // 1_000_000


class ManualClock:
    """Settable, monotonic clock for tests, demos and replays"""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("Clock cannot start before the epoch")
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        """Jump forward to ``timestamp``; time never runs backwards"""
        if timestamp < self._now:
            raise ValueError(f"Clock cannot move backwards from {self._now} to {timestamp}")
        self._now = timestamp

    def advance(self, milliseconds: int) -> int:
        if milliseconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += milliseconds
        return self._now
