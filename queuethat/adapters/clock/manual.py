"""
ManualClock — a deterministic fake timer.

Time only moves when tick() is called. Due callbacks fire in order of their
due time (ties in scheduling order), with now() set to each callback's due
time while it runs, so a callback that reschedules itself every 100 ms fires
exactly ten times during tick(timedelta(seconds=1)).

Used by the test suite and by tools/simulate_contexts.py to replay many
contexts sharing one store without real sleeps.
"""
from __future__ import annotations

import dataclasses
import heapq
import itertools
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

EPOCH = datetime(2024, 1, 1, tzinfo=UTC)


@dataclasses.dataclass
class ManualTimer:
    when: datetime
    callback: Callable[[], object]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclasses.dataclass
class ManualClock:
    """
    Parameters
    ----------
    start : initial value of now()
    """

    start: datetime = EPOCH

    def __post_init__(self) -> None:
        self._now = self.start
        self._timers: list[tuple[datetime, int, ManualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._now

    def call_later(
        self, delay: timedelta, callback: Callable[[], object]
    ) -> ManualTimer:
        timer = ManualTimer(when=self._now + max(delay, timedelta(0)), callback=callback)
        heapq.heappush(self._timers, (timer.when, next(self._seq), timer))
        return timer

    def tick(self, delta: timedelta | float) -> None:
        """
        Advance time by `delta` (a timedelta, or milliseconds as a number),
        firing every timer that falls due on the way.
        """
        if not isinstance(delta, timedelta):
            delta = timedelta(milliseconds=delta)
        target = self._now + delta
        while self._timers and self._timers[0][0] <= target:
            when, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = when
            timer.callback()
        self._now = target

    @property
    def pending(self) -> int:
        """Number of timers that are scheduled and not cancelled."""
        return sum(1 for _, _, timer in self._timers if not timer.cancelled)
