import asyncio

import pytest

from cbt_prep.store import LocalStore


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary server database path for tests."""
    db_path = str(tmp_path / "test_server.db")
    return db_path


@pytest.fixture
def tmp_store(tmp_path):
    """Provide a LocalStore backed by a temporary file."""
    store = LocalStore(str(tmp_path / "test_local.db"))
    yield store
    asyncio.run(store.close())
