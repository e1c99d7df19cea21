"""
Backoff — the persisted error/backoff state machine.

Persisted fields
----------------
error_count  — consecutive failures, reset to 0 on success
backoff_time — the *remaining* backoff window

On failure the window is set to initial * 2**error_count (error_count read
before it is incremented), so successive failures wait 1×, 2×, 4×, ... the
initial backoff.

Counting down
-------------
The window is consumed in steps of at most `initial`. Each finished step is
written back to storage, so a context that restarts mid-backoff (or another
context that takes over the lease) resumes from the persisted remainder
instead of starting the window again or ignoring it:

  backoff_time=3s, initial=1s
    t=0  step 1s starts        (pending_until = 1s)
    t=1  backoff_time → 2s     (pending_until = 2s)
    t=2  backoff_time → 1s     (pending_until = 3s)
    t=3  backoff_time → 0s     → ready

A finished step is only subtracted while storage still holds the window it
started from. A window rewritten by another context meanwhile starts a
fresh step instead.
"""
from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta

import structlog

from queuethat.domain.errors import ProcessingError
from queuethat.domain.models import INITIAL_BACKOFF_TIME
from queuethat.ports.clock import ClockPort
from queuethat.ports.storage import StoragePort

logger = structlog.get_logger(__name__)

_ZERO = timedelta(0)


@dataclasses.dataclass
class Backoff:
    storage: StoragePort
    clock: ClockPort
    initial: timedelta = INITIAL_BACKOFF_TIME

    pending_until: datetime | None = dataclasses.field(default=None, init=False)
    _step: timedelta = dataclasses.field(default=_ZERO, init=False, repr=False)
    _window: timedelta = dataclasses.field(default=_ZERO, init=False, repr=False)

    def ready(self) -> bool:
        """True when no backoff window blocks processing right now."""
        now = self.clock.now()

        if self.pending_until is not None and now < self.pending_until:
            return False

        remaining = self.storage.get_backoff_time()
        if self.pending_until is not None:
            # only count down a window this instance actually waited on
            if remaining == self._window:
                remaining = max(remaining - self._step, _ZERO)
                self.storage.set_backoff_time(remaining)
            self.pending_until = None

        if remaining > _ZERO:
            self._start_step(now, remaining)
            return False
        return True

    def record_failure(self, error: ProcessingError) -> timedelta:
        """Bump the error count and open a new window. Returns the window."""
        error_count = self.storage.get_error_count()
        backoff = self.initial * (2**error_count)
        self.storage.set_error_count(error_count + 1)
        self.storage.set_backoff_time(backoff)
        self._start_step(self.clock.now(), backoff)
        logger.warning(
            "batch_failed",
            error=str(error),
            error_count=error_count + 1,
            backoff_seconds=backoff.total_seconds(),
        )
        return backoff

    def record_success(self) -> None:
        self.storage.set_error_count(0)
        if self.storage.get_backoff_time() > _ZERO:
            self.storage.set_backoff_time(_ZERO)
        self.pending_until = None
        self._step = _ZERO
        self._window = _ZERO

    def _start_step(self, now: datetime, remaining: timedelta) -> None:
        self._window = remaining
        self._step = min(remaining, self.initial)
        self.pending_until = now + self._step
