"""
ClockPort — time source and timer factory driving the coordinator.

The coordinator never sleeps. Everything it does happens inside callbacks
scheduled through call_later(), so the same core runs on an asyncio event
loop (AsyncioClock) or under a deterministic fake timer (ManualClock).

now() must return timezone-aware UTC datetimes: lease timestamps written
by one context are compared against now() in another.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable


class TimerHandle(Protocol):
    """Anything with cancel(); asyncio.TimerHandle satisfies this."""

    def cancel(self) -> None: ...


@runtime_checkable
class ClockPort(Protocol):
    def now(self) -> datetime: ...

    def call_later(
        self, delay: timedelta, callback: Callable[[], object]
    ) -> TimerHandle:
        """Run `callback` once after `delay`. Cancelling the handle prevents it."""
        ...
