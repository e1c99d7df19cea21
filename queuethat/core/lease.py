"""
LeaseCoordinator — decides which context may drain the queue.

The lease is an ActiveOwnerRecord {id, ts} in the shared store. There is no
lock and no compare-and-set: a context that disappears without warning
(crash, closed tab) can only be recovered from by letting its record expire.

  absent or expired   → claim it (write {our id, now})
  ours, still fresh   → keep it; rewrite the timestamp on heartbeat checks
  someone else's      → stand by

Two contexts that both observe an expired record in the same instant will
both claim it, and the later write wins. Until the loser re-reads the record
on its next check, both believe they own the queue. That window is accepted.
"""
from __future__ import annotations

import dataclasses
from datetime import timedelta

import structlog

from queuethat.domain.models import ACTIVE_QUEUE_EXPIRE_TIME, ActiveOwnerRecord
from queuethat.ports.clock import ClockPort
from queuethat.ports.storage import StoragePort

logger = structlog.get_logger(__name__)


@dataclasses.dataclass
class LeaseCoordinator:
    """
    Parameters
    ----------
    storage     : shared store holding the lease record
    clock       : time source used to stamp and age records
    queue_id    : this context's identifier
    expire_time : a record older than this may be taken over
    """

    storage: StoragePort
    clock: ClockPort
    queue_id: str
    expire_time: timedelta = ACTIVE_QUEUE_EXPIRE_TIME

    def check(self, *, renew: bool) -> bool:
        """
        Return True if this context holds the lease after the check.

        renew=True is the heartbeat: an owned lease gets a fresh timestamp.
        """
        record = self.storage.get_active_queue()
        now = self.clock.now()

        if record is None or record.is_expired(now, self.expire_time):
            self.storage.set_active_queue(ActiveOwnerRecord.claim(self.queue_id, now))
            logger.info(
                "lease_claimed",
                queue_id=self.queue_id,
                previous_owner=record.id if record is not None else None,
            )
            return True

        if not record.is_owned_by(self.queue_id):
            return False

        if renew:
            self.storage.set_active_queue(ActiveOwnerRecord.claim(self.queue_id, now))
        return True
