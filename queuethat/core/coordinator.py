"""
QueueThat — the public coordinator: a callable enqueue plus destroy().

One repeating timer drives everything. Each tick:

  1. LeaseCoordinator.check(renew=True)  — claim a free/stale lease, renew ours
  2. QueueProcessor.attempt()            — only while we hold the lease

Enqueue appends to the persisted queue right away, then runs the same
check without renewing (an opportunistic pass), so an idle lease holder
starts on a new task without waiting for the next tick.

Usage
-----
    import asyncio
    from queuethat import create_queue_that

    async def main():
        def process(batch, done):
            send(batch)
            done()

        queue_that = create_queue_that(process, batch_size=50)
        queue_that({"event": "click"})
        ...
        queue_that.destroy()

    asyncio.run(main())

Storage errors during a tick are logged and the tick is abandoned; the next
tick re-reads everything from storage. Errors writing an enqueued task are
raised to the caller.
"""
from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import ValidationError

from queuethat.adapters.clock.event_loop import AsyncioClock
from queuethat.adapters.storage.memory import InMemoryStorage
from queuethat.core.backoff import Backoff
from queuethat.core.lease import LeaseCoordinator
from queuethat.core.processor import QueueProcessor
from queuethat.domain.errors import ConfigurationError, StorageError
from queuethat.domain.models import QueueOptions
from queuethat.ports.clock import ClockPort, TimerHandle
from queuethat.ports.storage import StoragePort

logger = structlog.get_logger(__name__)


@dataclasses.dataclass
class QueueThat:
    """
    Coordinates one context's share of the work on a shared queue.

    Prefer create_queue_that(), which validates options and starts the timer.

    Parameters
    ----------
    options  : validated configuration
    storage  : shared store
    clock    : time source and timer factory
    queue_id : this context's identifier (ContextId)
    """

    options: QueueOptions
    storage: StoragePort
    clock: ClockPort
    queue_id: str = dataclasses.field(default_factory=lambda: str(uuid.uuid4()))

    _lease: LeaseCoordinator = dataclasses.field(init=False, repr=False)
    _processor: QueueProcessor = dataclasses.field(init=False, repr=False)
    _timer: TimerHandle | None = dataclasses.field(
        default=None, init=False, repr=False
    )
    _started: bool = dataclasses.field(default=False, init=False, repr=False)
    _destroyed: bool = dataclasses.field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._lease = LeaseCoordinator(
            storage=self.storage,
            clock=self.clock,
            queue_id=self.queue_id,
            expire_time=self.options.active_queue_expire_time,
        )
        self._processor = QueueProcessor(
            storage=self.storage,
            clock=self.clock,
            backoff=Backoff(
                storage=self.storage,
                clock=self.clock,
                initial=self.options.initial_backoff_time,
            ),
            options=self.options,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Run the first tick now and keep ticking every poll_interval."""
        if self._started:
            raise RuntimeError("QueueThat is already running")
        if self._destroyed:
            raise RuntimeError("QueueThat has been destroyed")
        self._started = True
        logger.debug("queue_started", queue_id=self.queue_id, label=self.options.label)
        self._tick()

    def destroy(self) -> None:
        """
        Stop ticking. Idempotent.

        A batch already handed to the process function may still complete
        and persist its result; nothing else touches storage afterwards
        except explicit enqueue calls.
        """
        if self._destroyed:
            return
        self._destroyed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._processor.cancel_timers()
        logger.debug("queue_destroyed", queue_id=self.queue_id)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def processing(self) -> bool:
        """True while a batch is in flight."""
        return self._processor.processing

    # ------------------------------------------------------------------ #
    # Enqueue                                                              #
    # ------------------------------------------------------------------ #

    def __call__(self, task: Any) -> None:
        """Append `task` to the shared queue."""
        trim = self.options.trim

        def _append(queue: list[Any]) -> list[Any]:
            queue = [*queue, task]
            return list(trim(queue)) if trim is not None else queue

        self.storage.update_queue(_append)
        if not self._destroyed:
            self._check(renew=False)

    # ------------------------------------------------------------------ #
    # Internal machinery                                                   #
    # ------------------------------------------------------------------ #

    def _tick(self) -> None:
        if self._destroyed:
            return
        self._timer = self.clock.call_later(self.options.poll_interval, self._tick)
        self._check(renew=True)

    def _check(self, *, renew: bool) -> None:
        try:
            if self._lease.check(renew=renew):
                self._processor.attempt()
        except StorageError:
            logger.exception("check_failed", queue_id=self.queue_id)


ProcessFn = Callable[..., Any]


def create_queue_that(
    process: ProcessFn | None = None,
    *,
    storage: StoragePort | None = None,
    clock: ClockPort | None = None,
    queue_id: str | None = None,
    **options: Any,
) -> QueueThat:
    """
    Validate options, build a QueueThat and start it.

    Parameters
    ----------
    process  : process(batch, done) — required
    storage  : shared store; defaults to InMemoryStorage.for_label(label)
    clock    : defaults to AsyncioClock (needs a running event loop)
    queue_id : defaults to a fresh uuid4
    options  : any QueueOptions field (batch_size, label, trim, ...)

    Raises
    ------
    ConfigurationError  if process is missing or an option is invalid
    """
    if process is None:
        raise ConfigurationError("a process function is required")
    try:
        validated = QueueOptions(process=process, **options)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid queue options: {exc}") from exc

    queue_that = QueueThat(
        options=validated,
        storage=storage if storage is not None else InMemoryStorage.for_label(validated.label),
        clock=clock if clock is not None else AsyncioClock(),
        queue_id=queue_id if queue_id is not None else str(uuid.uuid4()),
    )
    queue_that.start()
    return queue_that
