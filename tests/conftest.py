"""Pytest configuration and fixtures."""

import os
import tempfile

import pytest
import pytest_asyncio

from ledgerline.database import Database
from ledgerline.settings import Settings
from tests.helpers import FakeClock


@pytest_asyncio.fixture
async def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    db = Database(db_path)
    await db.connect()

    yield db

    # Cleanup
    await db.close()
    db.remove_from_cache()
    if os.path.exists(db_path):
        os.unlink(db_path)
    for ext in ["-wal", "-shm"]:
        wal_path = db_path + ext
        if os.path.exists(wal_path):
            os.unlink(wal_path)


@pytest_asyncio.fixture
async def settings(temp_db):
    """Settings backed by the temporary database."""
    return Settings(temp_db)


@pytest.fixture
def clock():
    """Unix-seconds clock starting at a fixed instant."""
    return FakeClock()
