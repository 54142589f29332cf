"""Time source for deadline checks.

Every timeout is derived lazily by comparing a stored unix timestamp against
the clock at the moment of the call; services take the clock as a plain
callable so tests and the simulation can move time forward explicitly.
"""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], int]


def system_clock() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"Cannot move the clock backwards by {seconds}s")
        self.now += seconds
        return self.now
