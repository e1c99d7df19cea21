"""
Exception hierarchy for queuethat.

QueueThatError
├── ConfigurationError     — create_queue_that() called with missing/invalid options
├── ProcessingError        — the process function reported failure for a batch
│   └── ProcessTimeoutError — done() was not called within process_timeout
└── StorageError           — underlying I/O failure (wraps original exception)
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any


class QueueThatError(Exception):
    """Base class for all queuethat exceptions."""


class ConfigurationError(QueueThatError):
    """
    Raised synchronously by create_queue_that() when the options are unusable.

    No coordinator is constructed when this is raised.
    """


class ProcessingError(QueueThatError):
    """
    A batch failed.

    Never raised into caller code. The coordinator absorbs it into the
    backoff state machine. The value handed to done(error) is kept on
    `reason` so it can be logged.
    """

    def __init__(self, reason: Any) -> None:
        self.reason = reason
        super().__init__(f"Batch processing failed: {reason!r}")

    @classmethod
    def wrap(cls, reason: Any) -> ProcessingError:
        """Return `reason` unchanged if it already is a ProcessingError."""
        if isinstance(reason, ProcessingError):
            return reason
        return cls(reason)


class ProcessTimeoutError(ProcessingError):
    """The process function did not call done() within the configured timeout."""

    def __init__(self, timeout: timedelta) -> None:
        self.timeout = timeout
        super().__init__(f"done() not called within {timeout.total_seconds():g}s")


class StorageError(QueueThatError):
    """
    Wraps an underlying I/O failure from a storage adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the storage backend.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")
