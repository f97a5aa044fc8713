"""
State Mutator.

Applies a classified Action to the credential store. Every step is a
separate write; a failed write is logged and recorded, and the remaining
steps still run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional

import aiosqlite

from ...core.formatters import epoch_now, format_duration, format_timestamp
from ...core.logging import get_logger
from ..credential_store import CredentialStore
from .classifier import Action

logger = get_logger(__name__)


@dataclass
class MutationResult:
    """Which steps ran and which failed."""

    key_id: int
    character_id: Optional[int]
    code: int
    applied: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    demotion_escalated: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "key_id": self.key_id,
            "character_id": self.character_id,
            "code": self.code,
            "applied": self.applied,
            "failed": self.failed,
            "demotion_escalated": self.demotion_escalated,
        }


class StateMutator:
    """
    Write the effects of an Action for a (key, character) pair.

    Step order:
        1. demote (a failed demotion forces step 2)
        2. clear the character
        3. clear all characters of the key
        4. mark the credential errored
        5. per-character backoff
        6. record the code on the character row

    A global stop action only refreshes ApiStop904.
    """

    def __init__(self, store: CredentialStore):
        self.store = store

    async def apply(
        self,
        key_id: int,
        character_id: Optional[int],
        code: int,
        action: Action,
        now: Optional[int] = None,
    ) -> MutationResult:
        result = MutationResult(key_id=key_id, character_id=character_id, code=code)
        if now is None:
            now = epoch_now()

        if action.global_stop is not None:
            until = now + action.global_stop
            await self._step(result, "global_stop", self.store.set_api_stop(until))
            logger.warning(
                "API error %d: suspending all polling for %s until %s (keyID %d)",
                code,
                format_duration(action.global_stop),
                format_timestamp(until),
                key_id,
            )
            return result

        clear_character = action.clear_character

        if action.demote_character and character_id is not None:
            demoted = await self._step(
                result, "demote", self.store.set_director(key_id, character_id, False)
            )
            if not demoted:
                logger.warning(
                    "Demotion failed for keyID %d character %d, clearing character instead",
                    key_id,
                    character_id,
                )
                clear_character = True
                result.demotion_escalated = True

        if clear_character and character_id is not None:
            await self._step(
                result,
                "clear_character",
                self.store.delete_character(key_id, character_id),
            )

        if action.clear_all_characters:
            await self._step(
                result,
                "clear_all_characters",
                self.store.delete_characters_for_key(key_id),
            )

        if action.clear_api_entry:
            await self._step(
                result,
                "clear_api_entry",
                self.store.mark_credential_error(key_id, code),
            )

        if character_id is not None and action.cache_until is not None:
            await self._step(
                result,
                "cache_until",
                self.store.set_cached_until(key_id, character_id, action.cache_until),
            )

        if character_id is not None:
            await self._step(
                result,
                "record_error",
                self.store.set_character_error(key_id, character_id, code),
            )

        return result

    async def _step(self, result: MutationResult, name: str, write: Awaitable[Any]) -> bool:
        try:
            await write
        except aiosqlite.Error as e:
            logger.error(
                "State write %s failed for keyID %d character %s: %s",
                name,
                result.key_id,
                result.character_id,
                e,
            )
            result.failed.append(name)
            return False
        result.applied.append(name)
        return True
