"""
Domain models for queuethat — backed by Pydantic v2.

Pydantic handles:
  - JSON serialization / deserialization (via codec.py)
  - datetime parsing (ISO-8601 with timezone)
  - timedelta serialization (ISO-8601 durations)
  - option validation and type coercion

All models are frozen (immutable). Mutations return new instances via
model_copy(update=...), following a functional-update style.
"""

import math
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    field_validator,
)

DEFAULT_LABEL = "Queue That"
DEFAULT_BATCH_SIZE = 20
QUEUE_POLL_INTERVAL = timedelta(milliseconds=100)
ACTIVE_QUEUE_EXPIRE_TIME = timedelta(seconds=5)
INITIAL_BACKOFF_TIME = timedelta(seconds=1)


class ActiveOwnerRecord(BaseModel):
    """
    The lease: which context currently drains the queue.

    id — ContextId of the lease holder
    ts — UTC timestamp of the holder's last claim or renewal
    """

    model_config = ConfigDict(frozen=True)

    id: str
    ts: datetime

    @classmethod
    def claim(cls, queue_id: str, now: datetime) -> "ActiveOwnerRecord":
        """A fresh record for `queue_id` stamped with `now`."""
        return cls(id=queue_id, ts=now)

    def is_expired(self, now: datetime, expire_time: timedelta) -> bool:
        """True once `expire_time` has passed without a renewal (boundary inclusive)."""
        return now - self.ts >= expire_time

    def is_owned_by(self, queue_id: str) -> bool:
        return self.id == queue_id


class StoredState(BaseModel):
    """
    Everything the coordinator persists for one label.

    This is exactly what the built-in adapters keep in memory or write to
    the JSON state file. Pure value type — all mutations return new instances.

    queue        — ordered tasks; index 0 is processed first
    error_count  — consecutive processing failures
    backoff_time — remaining backoff window
    active_queue — current lease, None when nobody has claimed it yet
    """

    model_config = ConfigDict(frozen=True)

    queue: tuple[Any, ...] = ()
    error_count: int = Field(default=0, ge=0)
    backoff_time: timedelta = timedelta(0)
    active_queue: ActiveOwnerRecord | None = None

    @field_validator("backoff_time")
    @classmethod
    def _non_negative_backoff(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            raise ValueError("backoff_time must not be negative")
        return v

    # ------------------------------------------------------------------ #
    # Mutation helpers — each returns a new StoredState                    #
    # ------------------------------------------------------------------ #

    def with_queue(self, queue: list[Any] | tuple[Any, ...]) -> "StoredState":
        return self.model_copy(update={"queue": tuple(queue)})

    def with_error_count(self, count: int) -> "StoredState":
        if count < 0:
            raise ValueError("error_count must not be negative")
        return self.model_copy(update={"error_count": count})

    def with_backoff_time(self, backoff: timedelta) -> "StoredState":
        if backoff < timedelta(0):
            raise ValueError("backoff_time must not be negative")
        return self.model_copy(update={"backoff_time": backoff})

    def with_active_queue(self, record: ActiveOwnerRecord | None) -> "StoredState":
        return self.model_copy(update={"active_queue": record})


class QueueOptions(BaseModel):
    """
    Validated create_queue_that() configuration.

    process                  — process(batch, done); required
    batch_size               — max tasks per batch; None (or math.inf) takes the whole queue
    label                    — namespace for the default shared storage
    trim                     — trim(queue) -> queue, applied on every enqueue
    poll_interval            — tick cadence
    active_queue_expire_time — a lease not renewed for this long may be taken over
    initial_backoff_time     — backoff after the first failure; doubles per failure
    process_timeout          — fail a batch whose done() never fires; None waits forever
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    process: Callable[..., Any]
    batch_size: PositiveInt | None = DEFAULT_BATCH_SIZE
    label: str = Field(default=DEFAULT_LABEL, min_length=1)
    trim: Callable[[list[Any]], list[Any]] | None = None
    poll_interval: timedelta = QUEUE_POLL_INTERVAL
    active_queue_expire_time: timedelta = ACTIVE_QUEUE_EXPIRE_TIME
    initial_backoff_time: timedelta = INITIAL_BACKOFF_TIME
    process_timeout: timedelta | None = None

    @field_validator("batch_size", mode="before")
    @classmethod
    def _unbounded_batch(cls, v: Any) -> Any:
        """Accept math.inf as an alias for an unbounded batch."""
        if isinstance(v, float) and math.isinf(v) and v > 0:
            return None
        return v

    @field_validator(
        "poll_interval",
        "active_queue_expire_time",
        "initial_backoff_time",
        "process_timeout",
    )
    @classmethod
    def _positive_duration(cls, v: timedelta | None) -> timedelta | None:
        if v is not None and v <= timedelta(0):
            raise ValueError("durations must be positive")
        return v

    def take_batch(self, queue: list[Any]) -> list[Any]:
        """The prefix of `queue` that forms the next batch."""
        if self.batch_size is None:
            return list(queue)
        return list(queue[: self.batch_size])
