"""
Killlog Sync - Sharded KillLog polling for EVE Online XML API keys

Keeps a local killmail store in step with the kill logs of every character
reachable through the API keys it has been given, and reacts to the remote
API's error codes by backing off, demoting, or invalidating credentials.

Usage as library:
    from killlog_sync.core import EveApiClient
    from killlog_sync.services.credential_store import SQLiteCredentialStore
    from killlog_sync.services.killlog import FetchScheduler

    store = SQLiteCredentialStore()
    await store.initialize()
    async with EveApiClient() as client:
        scheduler = FetchScheduler(store, client)
        result = await scheduler.run_cycle()
        await scheduler.drain()

Usage as CLI:
    python -m killlog_sync killlog-cycle
    python -m killlog_sync killlog-fetch 3 30
    python -m killlog_sync killlog-check 12345 <vCode>

Package structure:
    killlog_sync/
    ├── core/           # Settings, logging, time helpers, XML API client
    ├── services/
    │   ├── credential_store/  # SQLite persistence (keys, characters, kills)
    │   └── killlog/           # Classifier, mutator, gate, scheduler, workers
    └── commands/       # CLI command implementations
"""

__version__ = "1.0.0"

from .core import (
    EveApiClient,
    RemoteError,
    get_settings,
    get_utc_timestamp,
)

__all__ = [
    "__version__",
    "EveApiClient",
    "RemoteError",
    "get_settings",
    "get_utc_timestamp",
]
