"""
Credential Store - Persistent State for KillLog Polling.

Holds API keys, the characters reachable through them (with their shard
assignment and backoff), ingested killmails, and the process-wide values
APIFetchesPerSecond and ApiStop904.

Usage:
    from killlog_sync.services.credential_store import SQLiteCredentialStore

    store = SQLiteCredentialStore()
    await store.initialize()

    await store.insert_credential(12345, "vcode")
    await store.upsert_character(12345, 90000001, "Pilot", is_director=False)
    due = await store.get_due_characters(shard_index=0, now=now)
"""

from .migrations import Migration, MigrationRunner, discover_migrations
from .protocol import (
    Character,
    Credential,
    CredentialStore,
    PollTarget,
    StoredKillmail,
)
from .sqlite import SQLiteCredentialStore

__all__ = [
    # Store implementation
    "SQLiteCredentialStore",
    # Migrations
    "Migration",
    "MigrationRunner",
    "discover_migrations",
    # Protocol
    "CredentialStore",
    "Credential",
    "Character",
    "PollTarget",
    "StoredKillmail",
]
