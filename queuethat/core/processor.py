"""
QueueProcessor — one batch at a time from the persisted queue.

A pass reads the queue, hands its first batch_size tasks to the process
function and waits for completion. The batch is NOT removed from storage
when it is handed out: only a success signal drops it, so a context that
dies mid-batch leaves its tasks for the next lease holder.

Completion
----------
The process function is called as process(batch, done) and completes the
batch in one of three ways:

  done()              → success
  done(error)         → failure (any value; wrapped in ProcessingError)
  return an awaitable → its result completes the batch; an exception fails it

A synchronous exception from process() also fails the batch, as does an
awaitable returned while no event loop is running. Only the first
completion counts; later ones are logged and ignored. Completing a batch
never starts the next one. The next tick does.

Storage errors while persisting the outcome are logged, not raised into
the caller of done(). The next pass works from whatever storage then holds.
"""
from __future__ import annotations

import asyncio
import dataclasses
import inspect
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import structlog

from queuethat.core.backoff import Backoff
from queuethat.domain.errors import (
    ProcessingError,
    ProcessTimeoutError,
    StorageError,
)
from queuethat.domain.models import QueueOptions
from queuethat.ports.clock import ClockPort, TimerHandle
from queuethat.ports.storage import StoragePort

logger = structlog.get_logger(__name__)


@dataclasses.dataclass
class BatchCompletion:
    """
    The done callback handed to process(). Callable at most once.

    Parameters
    ----------
    processor : owner of the in-flight batch
    batch     : the tasks handed out, in queue order
    """

    processor: QueueProcessor
    batch: list[Any]

    completed: bool = dataclasses.field(default=False, init=False)
    _timeout: TimerHandle | None = dataclasses.field(
        default=None, init=False, repr=False
    )
    _future: asyncio.Future[Any] | None = dataclasses.field(
        default=None, init=False, repr=False
    )

    def __call__(self, error: Any = None) -> None:
        if self.completed:
            logger.warning(
                "done_called_twice", batch_size=len(self.batch), error=error
            )
            return
        self.completed = True
        self.cancel_timeout()
        if error is None:
            self.processor._on_success(self.batch)
        else:
            self.processor._on_failure(ProcessingError.wrap(error))

    def arm_timeout(self, clock: ClockPort, timeout: timedelta) -> None:
        self._timeout = clock.call_later(
            timeout, lambda: self(ProcessTimeoutError(timeout))
        )

    def cancel_timeout(self) -> None:
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None

    def _on_awaited(self, future: asyncio.Future[Any]) -> None:
        if self.completed:
            return
        if future.cancelled():
            self(ProcessingError("process coroutine was cancelled"))
        elif (exc := future.exception()) is not None:
            self(exc)
        else:
            self()


@dataclasses.dataclass
class QueueProcessor:
    """
    Parameters
    ----------
    storage : shared store holding the queue
    clock   : time source for the optional process timeout
    backoff : error/backoff state machine gating every pass
    options : process function, batch size and timeout
    """

    storage: StoragePort
    clock: ClockPort
    backoff: Backoff
    options: QueueOptions

    processing: bool = dataclasses.field(default=False, init=False)
    _inflight: BatchCompletion | None = dataclasses.field(
        default=None, init=False, repr=False
    )

    def attempt(self) -> bool:
        """
        Start a pass if nothing is in flight and no backoff blocks it.

        Returns True when a batch was handed to the process function.
        """
        if self.processing:
            return False
        if not self.backoff.ready():
            return False

        queue = self.storage.get_queue()
        if not queue:
            return False

        batch = self.options.take_batch(queue)
        completion = BatchCompletion(processor=self, batch=batch)
        self.processing = True
        self._inflight = completion
        if self.options.process_timeout is not None:
            completion.arm_timeout(self.clock, self.options.process_timeout)

        logger.debug("batch_started", batch_size=len(batch), queue_size=len(queue))
        self._dispatch(completion)
        return True

    def cancel_timers(self) -> None:
        """Drop the process timeout of the in-flight batch, if any."""
        if self._inflight is not None:
            self._inflight.cancel_timeout()

    def _dispatch(self, completion: BatchCompletion) -> None:
        process: Callable[..., Any] = self.options.process
        try:
            result = process(completion.batch, completion)
        except Exception as exc:
            logger.exception("process_raised", batch_size=len(completion.batch))
            completion(exc)
            return

        if not inspect.isawaitable(result):
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(result):
                result.close()
            logger.error("no_running_loop", batch_size=len(completion.batch))
            if not completion.completed:
                completion(
                    ProcessingError("process returned an awaitable outside an event loop")
                )
            return
        completion._future = asyncio.ensure_future(result)
        completion._future.add_done_callback(completion._on_awaited)

    def _on_success(self, batch: list[Any]) -> None:
        try:
            self.storage.update_queue(lambda queue: queue[len(batch):])
            self.backoff.record_success()
            logger.debug("batch_succeeded", batch_size=len(batch))
        except StorageError:
            logger.exception("completion_failed", batch_size=len(batch), ok=True)
        finally:
            self._finish()

    def _on_failure(self, error: ProcessingError) -> None:
        try:
            self.backoff.record_failure(error)
        except StorageError:
            logger.exception("completion_failed", error=str(error), ok=False)
        finally:
            self._finish()

    def _finish(self) -> None:
        self.processing = False
        self._inflight = None
