import threading
from datetime import UTC, datetime, timedelta

import pytest

from queuethat.adapters.storage.memory import InMemoryStorage
from queuethat.domain.models import ActiveOwnerRecord, StoredState
from queuethat.ports.storage import StoragePort


def test_satisfies_the_storage_port():
    assert isinstance(InMemoryStorage(), StoragePort)


def test_fresh_store_reads_as_empty():
    storage = InMemoryStorage()
    assert storage.get_queue() == []
    assert storage.get_error_count() == 0
    assert storage.get_backoff_time() == timedelta(0)
    assert storage.get_active_queue() is None


def test_initial_state_constructor():
    storage = InMemoryStorage(initial_state=StoredState(queue=("A",), error_count=2))
    assert storage.get_queue() == ["A"]
    assert storage.get_error_count() == 2


def test_set_and_get_every_field():
    storage = InMemoryStorage()
    record = ActiveOwnerRecord(id="ctx", ts=datetime(2024, 1, 1, tzinfo=UTC))
    storage.set_queue(["A", "B"])
    storage.set_error_count(4)
    storage.set_backoff_time(timedelta(seconds=8))
    storage.set_active_queue(record)

    assert storage.get_queue() == ["A", "B"]
    assert storage.get_error_count() == 4
    assert storage.get_backoff_time() == timedelta(seconds=8)
    assert storage.get_active_queue() == record


def test_get_queue_returns_a_copy():
    storage = InMemoryStorage()
    storage.set_queue(["A"])
    storage.get_queue().append("B")
    assert storage.get_queue() == ["A"]


def test_update_queue_applies_and_returns_result():
    storage = InMemoryStorage()
    storage.set_queue(["A", "B", "C"])
    written = storage.update_queue(lambda queue: queue[1:])
    assert written == ["B", "C"]
    assert storage.get_queue() == ["B", "C"]


def test_update_queue_leaves_state_on_error():
    storage = InMemoryStorage()
    storage.set_queue(["A"])

    def _boom(queue: list) -> list:
        raise RuntimeError("trim failed")

    with pytest.raises(RuntimeError):
        storage.update_queue(_boom)
    assert storage.get_queue() == ["A"]


def test_concurrent_appends_are_not_lost():
    storage = InMemoryStorage()

    def _append_many(tag: str) -> None:
        for i in range(200):
            storage.update_queue(lambda queue: [*queue, f"{tag}{i}"])

    threads = [threading.Thread(target=_append_many, args=(t,)) for t in "abcd"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(storage.get_queue()) == 800


def test_for_label_shares_instances():
    assert InMemoryStorage.for_label("x") is InMemoryStorage.for_label("x")
    assert InMemoryStorage.for_label("x") is not InMemoryStorage.for_label("y")


def test_reset_shared_forgets_instances():
    first = InMemoryStorage.for_label("x")
    InMemoryStorage.reset_shared()
    assert InMemoryStorage.for_label("x") is not first


def test_shared_instances_keep_their_state_until_reset():
    InMemoryStorage.for_label("x").set_queue(["A"])
    InMemoryStorage.for_label("y")
    assert InMemoryStorage.for_label("x").get_queue() == ["A"]
    InMemoryStorage.reset_shared()
    assert InMemoryStorage.for_label("x").get_queue() == []
