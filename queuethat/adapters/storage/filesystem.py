"""
LocalFileSystemStorage — fcntl.flock-based store shared by every process
on one machine.

This is the closest analogue of a browser's per-origin localStorage: any
number of independent processes pointing at the same file cooperate
through it, and the file outlives all of them.

Layout
------
One JSON document (see codec.py) holds the queue, error count, backoff
time and lease record for one label. A file that is absent or empty is
treated as a fresh store.

Locking
-------
Reads take a shared flock. Every write, the single-field setters included,
takes an exclusive flock, re-reads the document, applies the change and
writes it back within the same lock scope, so concurrent writers never
clobber fields they did not touch and update_queue() is atomic.

POSIX-only (Linux, macOS). Not compatible with NFS or distributed filesystems.
"""

from __future__ import annotations

import dataclasses
import fcntl
import os
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import Any

from queuethat.core import codec
from queuethat.domain.errors import StorageError
from queuethat.domain.models import ActiveOwnerRecord, StoredState
from queuethat.ports.storage import QueueMutation


@dataclasses.dataclass
class LocalFileSystemStorage:
    """
    Stores the coordinator state in a local file.

    Parameters
    ----------
    path : path to the JSON state file (parent directory created if absent)
    """

    path: Path

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    # ------------------------------------------------------------------ #
    # StoragePort                                                          #
    # ------------------------------------------------------------------ #

    def get_queue(self) -> list[Any]:
        return list(self._read().queue)

    def set_queue(self, queue: list[Any]) -> None:
        self._mutate(lambda state: state.with_queue(queue))

    def update_queue(self, fn: QueueMutation) -> list[Any]:
        written: list[Any] = []

        def _fn(state: StoredState) -> StoredState:
            nonlocal written
            written = list(fn(list(state.queue)))
            return state.with_queue(written)

        self._mutate(_fn)
        return written

    def get_error_count(self) -> int:
        return self._read().error_count

    def set_error_count(self, count: int) -> None:
        self._mutate(lambda state: state.with_error_count(count))

    def get_backoff_time(self) -> timedelta:
        return self._read().backoff_time

    def set_backoff_time(self, backoff: timedelta) -> None:
        self._mutate(lambda state: state.with_backoff_time(backoff))

    def get_active_queue(self) -> ActiveOwnerRecord | None:
        return self._read().active_queue

    def set_active_queue(self, record: ActiveOwnerRecord) -> None:
        self._mutate(lambda state: state.with_active_queue(record))

    # ------------------------------------------------------------------ #
    # Locked file access                                                  #
    # ------------------------------------------------------------------ #

    def _read(self) -> StoredState:
        if not self.path.exists():
            return StoredState()
        try:
            with open(self.path, "rb") as fh:
                fcntl.flock(fh, fcntl.LOCK_SH)
                try:
                    content = fh.read()
                finally:
                    fcntl.flock(fh, fcntl.LOCK_UN)
        except FileNotFoundError:
            return StoredState()
        except OSError as exc:
            raise StorageError(f"Failed to read {self.path}", exc) from exc
        return codec.decode(content)

    def _mutate(self, fn: Callable[[StoredState], StoredState]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as exc:
            raise StorageError(f"Failed to open {self.path}", exc) from exc
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)

            existing = _read_all(fd)
            new_content = codec.encode(fn(codec.decode(existing)))

            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            _write_all(fd, new_content)
        except OSError as exc:
            raise StorageError(f"Failed to write {self.path}", exc) from exc
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)


def _read_all(fd: int) -> bytes:
    """Read the whole file behind `fd` from offset 0."""
    os.lseek(fd, 0, os.SEEK_SET)
    chunks: list[bytes] = []
    while chunk := os.read(fd, 65536):
        chunks.append(chunk)
    return b"".join(chunks)


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        view = view[os.write(fd, view):]
