"""
Time sources.

All timestamps in TestPulse are integer epoch milliseconds. Services accept a
``clock`` callable so windows, cooldowns and expiry can be tested without
real delays.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ManualClock:
    """
    Settable clock for deterministic tests and replays.

    Starts at ``start_ms`` and only moves when told to.
    """

    def __init__(self, start_ms: int = 0) -> None:
        self.now_ms = int(start_ms)

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> int:
        self.now_ms += int(ms)
        return self.now_ms

    def set(self, now_ms: int) -> None:
        self.now_ms = int(now_ms)
