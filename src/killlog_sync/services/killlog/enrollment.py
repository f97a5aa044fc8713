"""
Key Enrollment.

Adds validated keys to the store and re-validates stored ones. Re-validation
is the only way a key marked errored by the poller becomes pollable again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

import aiosqlite

from ...core.api_client import AccountInfo, RemoteApi
from ...core.formatters import epoch_now
from ...core.logging import get_logger
from ..credential_store import CredentialStore
from .access_gate import AccessGate, GateResult

logger = get_logger(__name__)


@dataclass
class EnrollmentResult:
    """Outcome of adding or re-validating a key."""

    ok: bool
    message: str
    key_id: Optional[int] = None
    key_type: Optional[str] = None
    characters: list[int] = field(default_factory=list)
    gate: Optional[GateResult] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "ok": self.ok,
            "message": self.message,
            "key_id": self.key_id,
            "key_type": self.key_type,
            "characters": self.characters,
        }
        if self.gate is not None and not self.gate.ok:
            result["reason"] = self.gate.reason.value if self.gate.reason else None
        return result


def display_key_type(info: AccountInfo) -> str:
    """Account keys are presented to users as Character keys."""
    if info.key_type == "Account":
        return "Character"
    return info.key_type or "Character"


async def sync_characters(store: CredentialStore, key_id: int, info: AccountInfo) -> list[int]:
    """
    Store the characters listed by APIKeyInfo and drop ones no longer listed.

    Characters of a corporation key poll the corporation kill log, so they
    are stored as directors.
    """
    director = info.is_corporation_key
    listed = []
    for character in info.characters:
        await store.upsert_character(
            key_id,
            character.character_id,
            character.character_name,
            is_director=director,
        )
        listed.append(character.character_id)

    for stored in await store.list_characters(key_id):
        if stored.character_id not in listed:
            await store.delete_character(key_id, stored.character_id)

    return listed


async def enroll_key(
    store: CredentialStore,
    client: RemoteApi,
    key_id: Union[str, int],
    v_code: str,
    user_id: int = 0,
    label: Optional[str] = None,
) -> EnrollmentResult:
    """
    Add a key for a user (0 = anonymous).

    A key submitted anonymously earlier is handed to the first user who
    submits it again.
    """
    gate = await AccessGate(client).validate(key_id, v_code)
    if not gate.ok:
        return EnrollmentResult(ok=False, message=gate.message, key_id=gate.key_id, gate=gate)

    assert gate.key_id is not None and gate.account_info is not None
    parsed_key_id = gate.key_id
    v_code = v_code.strip()

    existing = await store.get_credential(parsed_key_id, v_code)
    if existing is not None:
        if existing.owner_user_id == 0:
            await store.assign_owner(parsed_key_id, user_id, label)
            logger.info("keyID %d assigned to user %d", parsed_key_id, user_id)
            return EnrollmentResult(
                ok=True,
                message=(
                    f"keyID {parsed_key_id} previously existed in our database "
                    "but has now been assigned to you."
                ),
                key_id=parsed_key_id,
                gate=gate,
            )
        return EnrollmentResult(
            ok=False,
            message=f"keyID {parsed_key_id} is already in the database...",
            key_id=parsed_key_id,
            gate=gate,
        )

    try:
        await store.insert_credential(parsed_key_id, v_code, owner_user_id=user_id, label=label)
    except aiosqlite.IntegrityError:
        return EnrollmentResult(
            ok=False,
            message=f"keyID {parsed_key_id} is already in the database...",
            key_id=parsed_key_id,
            gate=gate,
        )

    info = gate.account_info
    await store.mark_validated(parsed_key_id, epoch_now())
    characters = await sync_characters(store, parsed_key_id, info)

    key_type = display_key_type(info)
    logger.info(
        "API: %d has been added. Type: %s (%d character(s))",
        parsed_key_id,
        key_type,
        len(characters),
    )
    return EnrollmentResult(
        ok=True,
        message=f"Success, your {key_type} key has been added.",
        key_id=parsed_key_id,
        key_type=key_type,
        characters=characters,
        gate=gate,
    )


async def revalidate_key(
    store: CredentialStore,
    client: RemoteApi,
    key_id: Union[str, int],
    v_code: str,
) -> EnrollmentResult:
    """
    Re-check a stored key and, if it passes, make it pollable again.

    Clears the key's error code, records the validation time and refreshes
    its character list. A failing key is left as it was.
    """
    gate = await AccessGate(client).validate(key_id, v_code)
    if not gate.ok:
        return EnrollmentResult(ok=False, message=gate.message, key_id=gate.key_id, gate=gate)

    assert gate.key_id is not None and gate.account_info is not None
    parsed_key_id = gate.key_id

    credential = await store.get_credential(parsed_key_id, v_code.strip())
    if credential is None:
        return EnrollmentResult(
            ok=False,
            message=f"keyID {parsed_key_id} is not in the database",
            key_id=parsed_key_id,
            gate=gate,
        )

    await store.mark_validated(parsed_key_id, epoch_now(), clear_error=True)
    characters = await sync_characters(store, parsed_key_id, gate.account_info)

    if credential.error_code:
        logger.info("keyID %d revalidated, cleared error %d", parsed_key_id, credential.error_code)

    key_type = display_key_type(gate.account_info)
    return EnrollmentResult(
        ok=True,
        message=f"keyID {parsed_key_id} has been revalidated.",
        key_id=parsed_key_id,
        key_type=key_type,
        characters=characters,
        gate=gate,
    )
