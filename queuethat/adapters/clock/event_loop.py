"""
AsyncioClock — drives the coordinator from an asyncio event loop.

Timers are plain loop.call_later() callbacks, so ticks run on the loop's
thread between other tasks and never overlap each other. now() is wall-clock
UTC because lease timestamps are compared across processes.
"""
from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable
from datetime import UTC, datetime, timedelta


@dataclasses.dataclass
class AsyncioClock:
    """
    Parameters
    ----------
    loop : event loop to schedule on; defaults to the loop running when
           the first timer is scheduled
    """

    loop: asyncio.AbstractEventLoop | None = None

    def now(self) -> datetime:
        return datetime.now(UTC)

    def call_later(
        self, delay: timedelta, callback: Callable[[], object]
    ) -> asyncio.TimerHandle:
        if self.loop is None:
            self.loop = asyncio.get_running_loop()
        return self.loop.call_later(max(delay.total_seconds(), 0.0), callback)
