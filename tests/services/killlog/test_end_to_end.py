"""
End-to-end polling scenarios.

A real SQLite store with a mocked remote API, driven through the
scheduler the way a cycle runs in production.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

pytestmark = pytest.mark.asyncio

from killlog_sync.core.api_client import RemoteError
from killlog_sync.core.formatters import epoch_now
from killlog_sync.services.credential_store import SQLiteCredentialStore
from killlog_sync.services.killlog import AccessGate, FetchScheduler, GateFailure

from tests.factories import make_account_info, make_kill_log, seed_key


async def run_one_cycle(store: SQLiteCredentialStore, client: MagicMock):
    scheduler = FetchScheduler(store, client, lock_timeout=0.01)
    result = await scheduler.run_cycle()
    outcomes = await asyncio.gather(*result.tasks)
    return result, outcomes


class TestAccessMaskGate:
    async def test_killlog_bit_required(self, client: MagicMock) -> None:
        client.fetch_account_info.return_value = make_account_info(1, access_mask=256)
        assert (await AccessGate(client).validate("100", "x")).ok is True

        client.fetch_account_info.return_value = make_account_info(1, access_mask=0)
        result = await AccessGate(client).validate("100", "x")
        assert result.ok is False
        assert result.reason == GateFailure.INSUFFICIENT_SCOPE


class TestPollingCycle:
    """Full cycles through scheduler, worker, classifier and mutator."""

    async def test_kills_ingested(self, store: SQLiteCredentialStore, client: MagicMock) -> None:
        await seed_key(store, 100, 1, 2, shard_count=None)
        await store.set_fetches_per_second(2)
        client.fetch_kill_log.return_value = make_kill_log(11, 12)

        result, outcomes = await run_one_cycle(store, client)

        assert result.task_count == 2
        assert sum(o.stats.kills_inserted for o in outcomes) == 2
        assert await store.count_killmails() == 2

    async def test_illegal_page_clears_key(
        self, store: SQLiteCredentialStore, client: MagicMock
    ) -> None:
        await seed_key(store, 100, 1, 2, 3, shard_count=None)
        await store.set_fetches_per_second(1)
        client.fetch_kill_log.side_effect = RemoteError(221, "Illegal page request!")

        await run_one_cycle(store, client)

        assert await store.list_characters(100) == []
        credential = await store.get_credential(100)
        assert credential is not None
        assert credential.error_code == 221
        assert await store.get_character_error(100, 1) == 221
        assert client.fetch_kill_log.await_count == 1

    async def test_cached_until_touches_only_character(
        self, store: SQLiteCredentialStore, client: MagicMock
    ) -> None:
        await seed_key(store, 100, 1, 2, shard_count=None)
        await store.set_fetches_per_second(1)
        until = epoch_now() + 600
        client.fetch_kill_log.side_effect = [
            RemoteError(119, "Kills exhausted", cached_until=until),
            make_kill_log(),
        ]

        await run_one_cycle(store, client)

        first = await store.get_character(100, 1)
        second = await store.get_character(100, 2)
        credential = await store.get_credential(100)
        assert first is not None and second is not None and credential is not None
        assert first.cached_until == until
        assert second.cached_until == 0
        assert second.error_code == 0
        assert credential.error_code == 0

    async def test_global_stop_blocks_next_cycle(
        self, store: SQLiteCredentialStore, client: MagicMock
    ) -> None:
        await seed_key(store, 100, 1, shard_count=None)
        await store.set_fetches_per_second(1)
        client.fetch_kill_log.side_effect = RemoteError(904, "Temporarily banned")
        before = epoch_now()

        await run_one_cycle(store, client)

        stop_until = await store.get_api_stop()
        assert stop_until is not None
        assert before + 300 <= stop_until <= epoch_now() + 300

        result, outcomes = await run_one_cycle(store, client)
        assert result.stopped is True
        assert outcomes == []
        assert client.fetch_kill_log.await_count == 1

    async def test_revalidated_key_polled_again(
        self, store: SQLiteCredentialStore, client: MagicMock
    ) -> None:
        from killlog_sync.services.killlog import revalidate_key

        await seed_key(store, 100, 1, shard_count=None)
        await store.set_fetches_per_second(1)
        await store.mark_credential_error(100, 203)

        _, outcomes = await run_one_cycle(store, client)
        assert outcomes[0].stats.characters_due == 0

        client.fetch_account_info.return_value = make_account_info(1)
        await revalidate_key(store, client, "100", "x")

        _, outcomes = await run_one_cycle(store, client)
        assert outcomes[0].stats.characters_polled == 1
