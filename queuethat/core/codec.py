"""
Codec — serialize and deserialize StoredState to/from bytes using Pydantic v2.

Pydantic v2 handles the full wire format automatically:
  - datetime fields are serialized as ISO-8601 strings with UTC offset
  - timedelta fields are serialized as ISO-8601 durations
  - Nested models (ActiveOwnerRecord inside StoredState) are recursively serialized

Tasks are stored as-is, so they must be JSON serialisable.

Wire format (produced by model_dump_json):
------------------------------------------
{
  "queue": ["A", {"event": "click"}],
  "error_count": 1,
  "backoff_time": "PT1S",
  "active_queue": {
    "id": "550e8400-...",
    "ts": "2024-01-01T00:00:00Z"
  }
}
"""
from __future__ import annotations

from pydantic import ValidationError

from queuethat.domain.errors import StorageError
from queuethat.domain.models import StoredState


def encode(state: StoredState) -> bytes:
    """Serialize StoredState to UTF-8 JSON bytes."""
    return state.model_dump_json(indent=2).encode("utf-8")


def decode(data: bytes) -> StoredState:
    """Deserialize UTF-8 JSON bytes to StoredState. Empty bytes → empty state."""
    if not data:
        return StoredState()
    try:
        return StoredState.model_validate_json(data)
    except ValidationError as exc:
        raise StorageError("Stored state is corrupt", exc) from exc
