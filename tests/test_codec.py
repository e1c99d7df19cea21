import json
from datetime import UTC, datetime, timedelta

import pytest

from queuethat.core import codec
from queuethat.domain.errors import StorageError
from queuethat.domain.models import ActiveOwnerRecord, StoredState


def test_decode_empty_bytes_returns_empty_state():
    state = codec.decode(b"")
    assert isinstance(state, StoredState)
    assert state.queue == ()
    assert state.active_queue is None


def test_encode_is_valid_json_with_every_field():
    data = json.loads(codec.encode(StoredState()))
    assert set(data) == {"queue", "error_count", "backoff_time", "active_queue"}


def test_encode_keeps_task_values_and_order():
    state = StoredState().with_queue(["A", 1, {"event": "click"}, [1, 2]])
    data = json.loads(codec.encode(state))
    assert data["queue"] == ["A", 1, {"event": "click"}, [1, 2]]


def test_lease_and_backoff_survive_a_roundtrip():
    record = ActiveOwnerRecord(id="ctx", ts=datetime(2024, 1, 1, tzinfo=UTC))
    state = (
        StoredState()
        .with_queue(["A"])
        .with_error_count(3)
        .with_backoff_time(timedelta(milliseconds=8500))
        .with_active_queue(record)
    )
    decoded = codec.decode(codec.encode(state))
    assert decoded == state
    assert decoded.active_queue.ts.tzinfo is not None  # type: ignore[union-attr]


def test_decode_corrupt_bytes_raises_storage_error():
    with pytest.raises(StorageError):
        codec.decode(b"{not json")


def test_decode_invalid_fields_raises_storage_error():
    with pytest.raises(StorageError):
        codec.decode(b'{"error_count": -4}')
