"""
Killmail ingestion: hash, dedupe by killID, store.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable

from ...core.api_client import Kill
from ...core.logging import get_logger
from ..credential_store import CredentialStore

logger = get_logger(__name__)


def canonical_json(payload: dict[str, Any]) -> str:
    """Serialize with sorted keys so equal payloads serialize identically."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def kill_hash(payload: dict[str, Any]) -> str:
    """SHA-1 hex digest of the canonical JSON payload."""
    return hashlib.sha1(canonical_json(payload).encode("utf-8")).hexdigest()


class KillmailIngester:
    """Insert kills that are not yet stored."""

    def __init__(self, store: CredentialStore):
        self.store = store

    async def ingest(self, source: str, kills: Iterable[Kill]) -> int:
        """
        Store new kills.

        Args:
            source: Where the kills came from (e.g. "keyID:12345")
            kills: Kills from a KillLog response

        Returns:
            Number of kills newly inserted. Re-ingesting known kills returns 0.
        """
        inserted = 0
        for kill in kills:
            if await self.store.kill_exists(kill.kill_id):
                continue
            payload_json = canonical_json(kill.payload)
            if await self.store.insert_killmail(
                kill.kill_id, kill_hash(kill.payload), source, payload_json
            ):
                inserted += 1

        if inserted:
            logger.info("Ingested %d new kill(s) from %s", inserted, source)
        return inserted
