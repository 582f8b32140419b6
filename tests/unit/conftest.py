"""Fixtures for unit tests."""

import pytest
from fakes import FakeConnection, FakeDatabaseManager


@pytest.fixture
def fake_connection() -> FakeConnection:
    """Source table holding ids 1..10."""
    return FakeConnection(source_ids=range(1, 11))


@pytest.fixture
def fake_db_manager(fake_connection: FakeConnection) -> FakeDatabaseManager:
    return FakeDatabaseManager(fake_connection)
