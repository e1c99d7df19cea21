from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from queuethat.adapters.clock.manual import ManualClock
from queuethat.adapters.storage.memory import InMemoryStorage
from queuethat.core.lease import LeaseCoordinator
from queuethat.domain.models import ActiveOwnerRecord

EXPIRE = timedelta(seconds=5)


@pytest.fixture
def lease(storage: MagicMock, clock: ManualClock) -> LeaseCoordinator:
    return LeaseCoordinator(
        storage=storage, clock=clock, queue_id="me", expire_time=EXPIRE
    )


# ---------------------------------------------------------------------------
# Claiming
# ---------------------------------------------------------------------------


def test_claims_when_no_record_exists(
    lease: LeaseCoordinator, memory: InMemoryStorage, clock: ManualClock
) -> None:
    assert lease.check(renew=False) is True
    assert memory.get_active_queue() == ActiveOwnerRecord(id="me", ts=clock.now())


def test_claims_when_the_record_expired_exactly(
    lease: LeaseCoordinator, memory: InMemoryStorage, clock: ManualClock
) -> None:
    memory.set_active_queue(ActiveOwnerRecord(id="other", ts=clock.now() - EXPIRE))
    assert lease.check(renew=False) is True
    assert memory.get_active_queue().id == "me"  # type: ignore[union-attr]


def test_stands_by_while_another_record_is_fresh(
    lease: LeaseCoordinator, memory: InMemoryStorage, storage: MagicMock, clock: ManualClock
) -> None:
    fresh = ActiveOwnerRecord(
        id="other", ts=clock.now() - EXPIRE + timedelta(milliseconds=1)
    )
    memory.set_active_queue(fresh)
    assert lease.check(renew=True) is False
    assert storage.set_active_queue.call_count == 0
    assert memory.get_active_queue() == fresh


# ---------------------------------------------------------------------------
# Renewal
# ---------------------------------------------------------------------------


def test_renews_own_record_on_heartbeat(
    lease: LeaseCoordinator, memory: InMemoryStorage, storage: MagicMock, clock: ManualClock
) -> None:
    lease.check(renew=True)
    clock.tick(timedelta(seconds=1))
    assert lease.check(renew=True) is True
    assert storage.set_active_queue.call_count == 2
    assert memory.get_active_queue().ts == clock.now()  # type: ignore[union-attr]


def test_keeps_own_record_untouched_without_renew(
    lease: LeaseCoordinator, storage: MagicMock, clock: ManualClock
) -> None:
    lease.check(renew=True)
    clock.tick(timedelta(seconds=1))
    assert lease.check(renew=False) is True
    assert storage.set_active_queue.call_count == 1


def test_reclaims_own_expired_record(
    lease: LeaseCoordinator, memory: InMemoryStorage, clock: ManualClock
) -> None:
    lease.check(renew=True)
    clock.tick(EXPIRE)
    assert lease.check(renew=False) is True
    assert memory.get_active_queue().ts == clock.now()  # type: ignore[union-attr]


def test_a_fresh_claim_is_respected_by_the_next_context(
    memory: InMemoryStorage, clock: ManualClock
) -> None:
    a = LeaseCoordinator(storage=memory, clock=clock, queue_id="a", expire_time=EXPIRE)
    b = LeaseCoordinator(storage=memory, clock=clock, queue_id="b", expire_time=EXPIRE)
    memory.set_active_queue(ActiveOwnerRecord(id="gone", ts=clock.now() - EXPIRE))

    # a claims, then b sees a fresh record and stands by
    assert a.check(renew=True) is True
    assert b.check(renew=True) is False
    assert memory.get_active_queue().id == "a"  # type: ignore[union-attr]


def test_contexts_reading_the_same_stale_record_both_claim(clock: ManualClock) -> None:
    stale = ActiveOwnerRecord(id="gone", ts=clock.now() - EXPIRE)
    shared = MagicMock()
    shared.get_active_queue.return_value = stale
    a = LeaseCoordinator(storage=shared, clock=clock, queue_id="a", expire_time=EXPIRE)
    b = LeaseCoordinator(storage=shared, clock=clock, queue_id="b", expire_time=EXPIRE)

    # no compare-and-set: both believe they won until the next read
    assert a.check(renew=True) is True
    assert b.check(renew=True) is True
    assert [c.args[0].id for c in shared.set_active_queue.call_args_list] == ["a", "b"]
