from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest

from queuethat.adapters.clock.manual import ManualClock
from queuethat.adapters.storage.memory import InMemoryStorage


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def memory() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def storage(memory: InMemoryStorage) -> MagicMock:
    """Spy around `memory`: real behaviour, recorded calls."""
    return MagicMock(wraps=memory)


@pytest.fixture(autouse=True)
def _reset_shared_storage() -> Iterator[None]:
    yield
    InMemoryStorage.reset_shared()

