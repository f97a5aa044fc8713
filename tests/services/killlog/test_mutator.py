"""Tests for StateMutator."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import aiosqlite
import pytest

pytestmark = pytest.mark.asyncio

from killlog_sync.services.credential_store import SQLiteCredentialStore
from killlog_sync.services.killlog.classifier import Action, classify
from killlog_sync.services.killlog.mutator import StateMutator

from tests.factories import seed_key

NOW = 1_700_000_000


def failing_store() -> MagicMock:
    """A store mock whose every write succeeds unless told otherwise."""
    store = MagicMock()
    for name in (
        "set_director",
        "delete_character",
        "delete_characters_for_key",
        "mark_credential_error",
        "set_cached_until",
        "set_character_error",
        "set_api_stop",
    ):
        setattr(store, name, AsyncMock(return_value=1))
    return store


class TestStateMutatorWithStore:
    """Mutations applied to a real SQLite store."""

    async def test_global_stop_only_sets_marker(self, store: SQLiteCredentialStore) -> None:
        await seed_key(store, 100, 1)

        result = await StateMutator(store).apply(100, 1, 904, classify(904, now=NOW), now=NOW)

        assert result.applied == ["global_stop"]
        assert await store.get_api_stop() == NOW + 300
        character = await store.get_character(100, 1)
        assert character is not None
        assert character.error_code == 0
        credential = await store.get_credential(100)
        assert credential is not None
        assert credential.error_code == 0

    async def test_key_invalidating_code(self, store: SQLiteCredentialStore) -> None:
        await seed_key(store, 100, 1, 2)
        await seed_key(store, 200, 3)

        result = await StateMutator(store).apply(100, 1, 221, classify(221, now=NOW), now=NOW)

        assert result.ok
        assert await store.list_characters(100) == []
        credential = await store.get_credential(100)
        assert credential is not None
        assert credential.error_code == 221
        assert await store.get_character_error(100, 1) == 221
        assert len(await store.list_characters(200)) == 1

    async def test_clear_character(self, store: SQLiteCredentialStore) -> None:
        await seed_key(store, 100, 1, 2)

        await StateMutator(store).apply(100, 1, 201, classify(201, now=NOW), now=NOW)

        assert [c.character_id for c in await store.list_characters(100)] == [2]
        credential = await store.get_credential(100)
        assert credential is not None
        assert credential.error_code == 0

    async def test_demote(self, store: SQLiteCredentialStore) -> None:
        await seed_key(store, 100, 1, director=True)

        await StateMutator(store).apply(100, 1, 207, classify(207, now=NOW), now=NOW)

        character = await store.get_character(100, 1)
        assert character is not None
        assert character.is_director is False
        assert character.error_code == 207

    async def test_backoff_only_touches_character(self, store: SQLiteCredentialStore) -> None:
        await seed_key(store, 100, 1, 2)

        await StateMutator(store).apply(100, 1, 503, classify(503, now=NOW), now=NOW)

        one = await store.get_character(100, 1)
        two = await store.get_character(100, 2)
        assert one is not None and two is not None
        assert one.cached_until == NOW + 300
        assert one.error_code == 503
        assert two.cached_until == 0
        assert two.error_code == 0

    async def test_key_level_error_without_character(self, store: SQLiteCredentialStore) -> None:
        await seed_key(store, 100, 1)

        result = await StateMutator(store).apply(100, None, 203, classify(203, now=NOW), now=NOW)

        assert "record_error" not in result.applied
        credential = await store.get_credential(100)
        assert credential is not None
        assert credential.error_code == 203
        assert await store.list_characters(100) == []

    async def test_error_code_recorded_even_without_action(
        self, store: SQLiteCredentialStore
    ) -> None:
        await seed_key(store, 100, 1)

        result = await StateMutator(store).apply(100, 1, 119, Action(), now=NOW)

        assert result.applied == ["record_error"]
        character = await store.get_character(100, 1)
        assert character is not None
        assert character.error_code == 119


class TestStateMutatorFailures:
    """Each step is best-effort."""

    async def test_step_order(self) -> None:
        store = failing_store()
        action = Action(
            demote_character=True,
            clear_character=True,
            clear_all_characters=True,
            clear_api_entry=True,
            cache_until=NOW + 10,
        )

        result = await StateMutator(store).apply(100, 1, 1, action, now=NOW)

        assert result.applied == [
            "demote",
            "clear_character",
            "clear_all_characters",
            "clear_api_entry",
            "cache_until",
            "record_error",
        ]

    async def test_failed_demotion_clears_character(self) -> None:
        store = failing_store()
        store.set_director.side_effect = aiosqlite.OperationalError("database is locked")

        result = await StateMutator(store).apply(
            100, 1, 207, Action(demote_character=True), now=NOW
        )

        assert result.demotion_escalated is True
        assert result.failed == ["demote"]
        store.delete_character.assert_awaited_once_with(100, 1)
        store.set_character_error.assert_awaited_once_with(100, 1, 207)

    async def test_failed_step_does_not_stop_later_steps(self) -> None:
        store = failing_store()
        store.delete_characters_for_key.side_effect = aiosqlite.OperationalError("locked")

        result = await StateMutator(store).apply(100, 7, 221, classify(221, now=NOW), now=NOW)

        assert result.failed == ["clear_all_characters"]
        assert result.ok is False
        store.mark_credential_error.assert_awaited_once_with(100, 221)
        store.set_character_error.assert_awaited_once_with(100, 7, 221)

    async def test_global_stop_failure_is_reported(self) -> None:
        store = failing_store()
        store.set_api_stop.side_effect = aiosqlite.OperationalError("locked")

        result = await StateMutator(store).apply(100, 1, 28, classify(28, now=NOW), now=NOW)

        assert result.failed == ["global_stop"]
        store.set_character_error.assert_not_awaited()

    async def test_demote_without_character_is_skipped(self) -> None:
        store = failing_store()

        result = await StateMutator(store).apply(
            100, None, 207, Action(demote_character=True), now=NOW
        )

        assert result.applied == []
        store.set_director.assert_not_awaited()

    async def test_to_dict(self) -> None:
        result = await StateMutator(failing_store()).apply(
            100, 1, 503, classify(503, now=NOW), now=NOW
        )

        assert result.to_dict() == {
            "key_id": 100,
            "character_id": 1,
            "code": 503,
            "applied": ["cache_until", "record_error"],
            "failed": [],
            "demotion_escalated": False,
        }
