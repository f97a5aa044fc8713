"""Fixtures for credential_store tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from killlog_sync.services.credential_store import SQLiteCredentialStore


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_killlog.db"


@pytest_asyncio.fixture
async def store(temp_db_path: Path) -> AsyncGenerator[SQLiteCredentialStore, None]:
    """Create and initialize a test store."""
    store = SQLiteCredentialStore(db_path=temp_db_path)
    await store.initialize()
    yield store
    await store.close()
