import pytest

from listing_map.tests.factories import MemoryStorage


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()
