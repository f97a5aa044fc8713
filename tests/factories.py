"""
Builders for remote API results used across the test suite.
"""

from __future__ import annotations

from killlog_sync.core.api_client import AccountCharacter, AccountInfo, Kill, KillLog


def make_account_info(
    *character_ids: int,
    access_mask: int = 256,
    key_type: str = "Account",
) -> AccountInfo:
    """Build an APIKeyInfo result listing the given characters."""
    return AccountInfo(
        access_mask=access_mask,
        key_type=key_type,
        characters=[
            AccountCharacter(character_id=cid, character_name=f"Pilot {cid}")
            for cid in character_ids
        ],
    )


def make_kill(kill_id: int, **fields) -> Kill:
    """Build a kill row with a minimal payload."""
    payload = {
        "killID": str(kill_id),
        "solarSystemID": "30000142",
        "killTime": "2015-03-01 12:00:00",
        "victim": {"characterID": "90000001", "shipTypeID": "670"},
        "attackers": [{"characterID": "90000002", "finalBlow": "1"}],
    }
    payload.update(fields)
    return Kill(kill_id=kill_id, payload=payload)


def make_kill_log(*kill_ids: int, cached_until: int | None = None) -> KillLog:
    """Build a KillLog result with minimal kill rows."""
    return KillLog(kills=[make_kill(kill_id) for kill_id in kill_ids], cached_until=cached_until)


async def seed_key(
    store,
    key_id: int,
    *character_ids: int,
    v_code: str = "x",
    director: bool = False,
    shard_count: int | None = 1,
) -> None:
    """Store a credential with characters, assigned to shards when shard_count is set."""
    await store.insert_credential(key_id, v_code)
    for character_id in character_ids:
        await store.upsert_character(key_id, character_id, f"Pilot {character_id}", director)
    if shard_count is not None:
        await store.assign_moduli(shard_count)
