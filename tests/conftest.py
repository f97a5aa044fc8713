"""
Killlog Sync Test Suite - Shared Fixtures and Configuration

Every test runs against a temporary instance root, so the settings-derived
database path never points at a real killlog.db.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from pathlib import Path

import pytest

from tests.factories import make_account_info, make_kill_log


# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """
    Point settings at a temporary instance root and reset module singletons.

    Settings must be reset before logging: loggers read their level from
    settings when first created.
    """
    from killlog_sync.core.config import reset_settings
    from killlog_sync.core.logging import reset_logging

    for var in (
        "KILLLOG_LOG_LEVEL",
        "KILLLOG_DEBUG",
        "KILLLOG_LOG_JSON",
        "KILLLOG_API_BASE_URL",
        "KILLLOG_FETCHES_PER_SECOND",
        "KILLLOG_SHARD_LOCK_TIMEOUT",
        "KILLLOG_CYCLE_INTERVAL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("KILLLOG_INSTANCE_ROOT", str(tmp_path))
    monkeypatch.setenv("KILLLOG_NO_RETRY", "1")

    reset_settings()
    reset_logging()
    yield tmp_path
    reset_settings()
    reset_logging()


# =============================================================================
# Shared Data
# =============================================================================


@pytest.fixture
def now() -> int:
    """Current unix time, fixed for the duration of a test."""
    return int(time.time())


@pytest.fixture
def account_info_factory():
    """Fixture providing make_account_info."""
    return make_account_info


@pytest.fixture
def kill_log_factory():
    """Fixture providing make_kill_log."""
    return make_kill_log
