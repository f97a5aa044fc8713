"""
Fetch Worker.

Polls the kill logs of one shard's due characters, one character at a time.
Successful fetches go to the ingester; remote errors go through the
classifier to the state mutator.
"""

from __future__ import annotations

from itertools import groupby
from typing import Optional

from ...core.api_client import RemoteApi, RemoteError
from ...core.constants import ERROR_SECURITY_LEVEL_ALT
from ...core.formatters import epoch_now, format_duration, format_timestamp
from ...core.logging import get_logger
from ..credential_store import CredentialStore, PollTarget
from .access_gate import AccessGate, GateFailure, GateResult
from .classifier import Action, classify, is_known_code
from .ingest import KillmailIngester
from .models import WorkerStats
from .mutator import StateMutator

logger = get_logger(__name__)


def kill_source(key_id: int) -> str:
    """Source label stored with kills fetched through a key."""
    return f"keyID:{key_id}"


class FetchWorker:
    """
    Run one polling pass over a shard.

    Each key is validated through the AccessGate once per run. A key that
    fails validation has its error applied at key level and its characters
    are skipped until the next run. An error that marks the key errored
    mid-run skips the key's remaining characters the same way.
    """

    def __init__(
        self,
        store: CredentialStore,
        client: RemoteApi,
        gate: Optional[AccessGate] = None,
        ingester: Optional[KillmailIngester] = None,
        mutator: Optional[StateMutator] = None,
    ):
        self.store = store
        self.client = client
        self.gate = gate or AccessGate(client)
        self.ingester = ingester or KillmailIngester(store)
        self.mutator = mutator or StateMutator(store)

    async def run(self, shard_index: int, shard_count: int) -> WorkerStats:
        stats = WorkerStats(shard_index=shard_index, shard_count=shard_count)

        now = epoch_now()
        stop_until = await self.store.get_api_stop()
        if stop_until is not None and stop_until > now:
            logger.info(
                "Shard %d/%d: polling suspended for %s (until %s)",
                shard_index,
                shard_count,
                format_duration(stop_until - now),
                format_timestamp(stop_until),
            )
            stats.stopped = True
            return stats

        targets = await self.store.get_due_characters(shard_index, now)
        stats.characters_due = len(targets)
        if not targets:
            logger.debug("Shard %d/%d: no characters due", shard_index, shard_count)
            return stats

        for key_id, group in groupby(targets, key=lambda t: t.key_id):
            characters = list(group)
            if stats.stopped:
                stats.characters_skipped += len(characters)
                continue

            stats.keys_checked += 1
            try:
                key_ok = await self._check_key(key_id, characters[0].v_code, stats)
            except Exception:
                stats.unexpected_errors += 1
                logger.exception("Unexpected error validating keyID %d", key_id)
                key_ok = False
            if not key_ok:
                stats.keys_rejected += 1
                stats.characters_skipped += len(characters)
                continue

            key_cleared = False
            for target in characters:
                if stats.stopped or key_cleared:
                    stats.characters_skipped += 1
                    continue
                key_cleared = await self._poll_character(target, stats)

        logger.info(
            "Shard %d/%d done: %d polled, %d kills added, %d errors",
            shard_index,
            shard_count,
            stats.characters_polled,
            stats.kills_inserted,
            stats.fetch_errors,
        )
        return stats

    async def _check_key(self, key_id: int, v_code: str, stats: WorkerStats) -> bool:
        """Validate the key; on failure apply the error at key level."""
        result = await self.gate.validate(key_id, v_code)
        if result.ok:
            await self.store.mark_validated(key_id, epoch_now())
            return True

        code = self._gate_failure_code(result)
        if code is None:
            logger.warning("keyID %d rejected: %s", key_id, result.message)
            return False

        cached_until = result.remote_error.cached_until if result.remote_error else None
        await self._handle_error(key_id, None, code, cached_until, stats)
        logger.info("keyID %d rejected (%d): %s", key_id, code, result.message)
        return False

    @staticmethod
    def _gate_failure_code(result: GateResult) -> Optional[int]:
        if result.reason == GateFailure.INSUFFICIENT_SCOPE:
            return ERROR_SECURITY_LEVEL_ALT
        if result.remote_error is not None:
            return result.remote_error.code
        return None

    async def _poll_character(self, target: PollTarget, stats: WorkerStats) -> bool:
        """Poll one character. Returns True when the error took the key out of service."""
        try:
            kill_log = await self.client.fetch_kill_log(
                target.key_id,
                target.v_code,
                target.character_id,
                corporation=target.is_director,
            )
        except RemoteError as e:
            action = await self._handle_error(
                target.key_id, target.character_id, e.code, e.cached_until, stats
            )
            return action.clear_all_characters or action.clear_api_entry
        except Exception:
            stats.unexpected_errors += 1
            logger.exception(
                "Unexpected error polling keyID %d character %d",
                target.key_id,
                target.character_id,
            )
            return False

        stats.characters_polled += 1
        try:
            stats.kills_inserted += await self.ingester.ingest(
                kill_source(target.key_id), kill_log.kills
            )
            await self.store.record_fetch_success(
                target.key_id, target.character_id, kill_log.cached_until
            )
        except Exception:
            stats.unexpected_errors += 1
            logger.exception(
                "Failed to store kill log for keyID %d character %d",
                target.key_id,
                target.character_id,
            )
        return False

    async def _handle_error(
        self,
        key_id: int,
        character_id: Optional[int],
        code: int,
        cached_until: Optional[int],
        stats: WorkerStats,
    ) -> Action:
        stats.record_error(code)
        if not is_known_code(code):
            logger.warning(
                "Unhandled API error code %d for keyID %d character %s, marking key errored",
                code,
                key_id,
                character_id,
            )

        action = classify(code, cached_until=cached_until)
        await self.mutator.apply(key_id, character_id, code, action)
        if action.global_stop is not None:
            stats.stopped = True
        return action
