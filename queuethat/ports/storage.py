"""
StoragePort — the shared key-value store every context coordinates through.

Any object satisfying this structural Protocol can act as the storage backend.
No base class or registration is required — Python's structural subtyping
(duck typing + Protocol) is sufficient.

The store is the only channel between contexts: there are no locks,
notifications or compare-and-set offered to the coordinator. Every value is
re-read on every tick, so a write lost to a concurrent writer is corrected
on the next read rather than treated as an error.

Atomicity contract
------------------
Each individual get/set must be atomic with respect to other callers.
update_queue(fn) must apply read → fn → write as one unit using whatever
primitive the backend offers (a lock, a file lock, a transaction), so that
two enqueues from different contexts cannot drop each other's task.

Missing values
--------------
A store that has never been written behaves as:
  queue        → []
  error_count  → 0
  backoff_time → timedelta(0)
  active_queue → None
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Any, Protocol, runtime_checkable

from queuethat.domain.models import ActiveOwnerRecord

QueueMutation = Callable[[list[Any]], list[Any]]


@runtime_checkable
class StoragePort(Protocol):
    """
    Minimal interface required by the queuethat core.

    Implementing adapters (built-in):
      - InMemoryStorage        — threading.Lock-based, one process
      - LocalFileSystemStorage — fcntl.flock-based, shared across processes
    """

    def get_queue(self) -> list[Any]:
        """Return a copy of the persisted queue, oldest task first."""
        ...

    def set_queue(self, queue: list[Any]) -> None: ...

    def update_queue(self, fn: QueueMutation) -> list[Any]:
        """
        Atomically replace the queue with fn(queue).

        Returns the queue as written.
        """
        ...

    def get_error_count(self) -> int: ...

    def set_error_count(self, count: int) -> None: ...

    def get_backoff_time(self) -> timedelta: ...

    def set_backoff_time(self, backoff: timedelta) -> None: ...

    def get_active_queue(self) -> ActiveOwnerRecord | None:
        """Return the current lease record, or None if nobody ever claimed it."""
        ...

    def set_active_queue(self, record: ActiveOwnerRecord) -> None:
        """Overwrite the lease record (last writer wins)."""
        ...
