"""
InMemoryStorage — threading.Lock-based store for tests, examples and
contexts that live in a single process.

Holds one StoredState value and swaps it for a new one on every write.
The lock serializes reads and writes, so update_queue() is a true atomic
read-modify-write.

Zero external dependencies. Safe across threads and coroutines of one
process. NOT shared across processes; use LocalFileSystemStorage for that.

Shared instances
----------------
InMemoryStorage.for_label(label) returns the same instance for the same
label within a process. create_queue_that() uses it when no storage is
given, so every coordinator created with one label drains one queue.
"""
from __future__ import annotations

import dataclasses
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any, ClassVar

from queuethat.domain.models import ActiveOwnerRecord, StoredState
from queuethat.ports.storage import QueueMutation


@dataclasses.dataclass
class InMemoryStorage:
    """
    In-process storage backed by a StoredState value.

    Parameters
    ----------
    initial_state : optional pre-populated state (useful for test setup)
    """

    initial_state: StoredState = dataclasses.field(default_factory=StoredState)

    _shared: ClassVar[dict[str, InMemoryStorage]] = {}
    _shared_lock: ClassVar[threading.Lock] = threading.Lock()

    def __post_init__(self) -> None:
        self._state: StoredState = self.initial_state
        self._lock = threading.RLock()

    @classmethod
    def for_label(cls, label: str) -> InMemoryStorage:
        """
        Process-wide instance for `label`, created on first use.

        Instances are kept until reset_shared() is called, so the map grows
        with every distinct label used in the process.
        """
        with cls._shared_lock:
            storage = cls._shared.get(label)
            if storage is None:
                storage = cls._shared[label] = cls()
            return storage

    @classmethod
    def reset_shared(cls) -> None:
        """Forget every label-shared instance."""
        with cls._shared_lock:
            cls._shared.clear()

    @property
    def state(self) -> StoredState:
        """Snapshot of everything stored."""
        with self._lock:
            return self._state

    # ------------------------------------------------------------------ #
    # StoragePort                                                          #
    # ------------------------------------------------------------------ #

    def get_queue(self) -> list[Any]:
        with self._lock:
            return list(self._state.queue)

    def set_queue(self, queue: list[Any]) -> None:
        self._mutate(lambda state: state.with_queue(queue))

    def update_queue(self, fn: QueueMutation) -> list[Any]:
        with self._lock:
            queue = fn(list(self._state.queue))
            self._state = self._state.with_queue(queue)
            return list(queue)

    def get_error_count(self) -> int:
        with self._lock:
            return self._state.error_count

    def set_error_count(self, count: int) -> None:
        self._mutate(lambda state: state.with_error_count(count))

    def get_backoff_time(self) -> timedelta:
        with self._lock:
            return self._state.backoff_time

    def set_backoff_time(self, backoff: timedelta) -> None:
        self._mutate(lambda state: state.with_backoff_time(backoff))

    def get_active_queue(self) -> ActiveOwnerRecord | None:
        with self._lock:
            return self._state.active_queue

    def set_active_queue(self, record: ActiveOwnerRecord) -> None:
        self._mutate(lambda state: state.with_active_queue(record))

    def _mutate(self, fn: Callable[[StoredState], StoredState]) -> None:
        with self._lock:
            self._state = fn(self._state)
