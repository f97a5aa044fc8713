"""Tests for killmail ingestion."""

from __future__ import annotations

import json

import pytest

pytestmark = pytest.mark.asyncio

from killlog_sync.services.credential_store import SQLiteCredentialStore
from killlog_sync.services.killlog.ingest import KillmailIngester, canonical_json, kill_hash

from tests.factories import make_kill


class TestCanonicalJson:
    async def test_key_order_does_not_matter(self) -> None:
        a = {"b": 1, "a": {"d": 2, "c": 3}}
        b = {"a": {"c": 3, "d": 2}, "b": 1}

        assert canonical_json(a) == canonical_json(b)
        assert kill_hash(a) == kill_hash(b)

    async def test_compact(self) -> None:
        assert canonical_json({"a": [1, 2]}) == '{"a":[1,2]}'

    async def test_hash_is_sha1_hex(self) -> None:
        digest = kill_hash({"killID": "1"})

        assert len(digest) == 40
        int(digest, 16)


class TestKillmailIngester:
    """Insert-if-absent semantics."""

    async def test_inserts_new_kills(self, store: SQLiteCredentialStore) -> None:
        kills = [make_kill(1), make_kill(2)]

        inserted = await KillmailIngester(store).ingest("keyID:100", kills)

        assert inserted == 2
        stored = await store.get_killmail(1)
        assert stored is not None
        assert stored.source == "keyID:100"
        assert stored.hash == kill_hash(kills[0].payload)
        assert json.loads(stored.kill_json) == kills[0].payload

    async def test_reingest_is_noop(self, store: SQLiteCredentialStore) -> None:
        ingester = KillmailIngester(store)
        await ingester.ingest("keyID:100", [make_kill(1)])

        assert await ingester.ingest("keyID:100", [make_kill(1)]) == 0
        assert await store.count_killmails() == 1

    async def test_first_source_wins(self, store: SQLiteCredentialStore) -> None:
        ingester = KillmailIngester(store)
        await ingester.ingest("keyID:100", [make_kill(1)])

        inserted = await ingester.ingest("keyID:200", [make_kill(1, solarSystemID="1"), make_kill(2)])

        assert inserted == 1
        stored = await store.get_killmail(1)
        assert stored is not None
        assert stored.source == "keyID:100"

    async def test_empty_batch(self, store: SQLiteCredentialStore) -> None:
        assert await KillmailIngester(store).ingest("keyID:100", []) == 0
