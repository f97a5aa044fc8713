"""Fixtures for killlog polling tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from killlog_sync.services.credential_store import SQLiteCredentialStore

from tests.factories import make_account_info, make_kill_log


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> AsyncGenerator[SQLiteCredentialStore, None]:
    """Create and initialize a test store."""
    store = SQLiteCredentialStore(db_path=tmp_path / "test_killlog.db")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def client() -> MagicMock:
    """
    Mock remote API.

    By default every key has the KillLog bit and every kill log is empty.
    Tests override return_value / side_effect per call.
    """
    client = MagicMock()
    client.fetch_account_info = AsyncMock(return_value=make_account_info(1, access_mask=256))
    client.fetch_kill_log = AsyncMock(return_value=make_kill_log())
    return client
