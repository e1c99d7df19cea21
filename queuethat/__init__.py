"""
queuethat — drain one shared task queue from many independent contexts.

Several contexts (processes, event loops, workers) that share nothing but a
key-value store take turns processing a single FIFO queue:

  - only the holder of a timed lease processes; a context that vanishes
    without releasing it is replaced once its lease expires
  - a batch is removed from the store only after the process function
    reports success, so nothing is lost across restarts
  - failures back off exponentially, and the backoff is persisted so a
    restarted context keeps honouring it

Quick start
-----------
    import asyncio
    from queuethat import create_queue_that
    from queuethat.adapters.storage.filesystem import LocalFileSystemStorage

    async def main():
        def process(batch, done):
            print("sending", batch)
            done()

        queue_that = create_queue_that(
            process,
            storage=LocalFileSystemStorage("/tmp/events.json"),
        )
        queue_that({"event": "page_view"})
        await asyncio.sleep(1)
        queue_that.destroy()

    asyncio.run(main())

Storage adapters
----------------
Built-in adapters (no extra deps):
  - InMemoryStorage         — one process; shared per label by default
  - LocalFileSystemStorage  — POSIX, shared by every process on the machine

Custom adapters implement the synchronous StoragePort Protocol
(get/set for queue, error count, backoff time and lease record, plus an
atomic update_queue).

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (ActiveOwnerRecord, StoredState, QueueOptions)
  ports/    — Protocol interfaces (StoragePort, ClockPort)
  core/     — business logic (LeaseCoordinator, Backoff, QueueProcessor, QueueThat)
  adapters/ — concrete storage and clock implementations
"""
from __future__ import annotations

from queuethat.adapters.clock.event_loop import AsyncioClock
from queuethat.adapters.clock.manual import ManualClock
from queuethat.adapters.storage.filesystem import LocalFileSystemStorage
from queuethat.adapters.storage.memory import InMemoryStorage
from queuethat.core.coordinator import QueueThat, create_queue_that
from queuethat.domain.errors import (
    ConfigurationError,
    ProcessingError,
    ProcessTimeoutError,
    QueueThatError,
    StorageError,
)
from queuethat.domain.models import ActiveOwnerRecord, QueueOptions, StoredState
from queuethat.log import configure_logging
from queuethat.ports.clock import ClockPort
from queuethat.ports.storage import StoragePort

__all__ = [
    # Entry point
    "create_queue_that",
    "QueueThat",
    # Domain models
    "ActiveOwnerRecord",
    "QueueOptions",
    "StoredState",
    # Errors
    "QueueThatError",
    "ConfigurationError",
    "ProcessingError",
    "ProcessTimeoutError",
    "StorageError",
    # Ports (for typing custom adapters)
    "ClockPort",
    "StoragePort",
    # Built-in adapters
    "AsyncioClock",
    "ManualClock",
    "InMemoryStorage",
    "LocalFileSystemStorage",
    # Logging
    "configure_logging",
]
