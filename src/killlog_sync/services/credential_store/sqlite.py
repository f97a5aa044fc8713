"""
SQLite Implementation of the Credential Store.

Uses WAL mode so shard workers sharing the connection and a separately run
CLI command can read while another writes.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import aiosqlite

from ...core.constants import (
    DEFAULT_FETCHES_PER_SECOND,
    STORAGE_API_STOP,
    STORAGE_FETCHES_PER_SECOND,
)
from .migrations import MigrationRunner
from .protocol import Character, Credential, PollTarget, StoredKillmail

logger = logging.getLogger(__name__)


def _director_to_db(value: Optional[bool]) -> Optional[int]:
    if value is None:
        return None
    return 1 if value else 0


def _director_from_db(value: Optional[int]) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


class SQLiteCredentialStore:
    """
    SQLite implementation of CredentialStore.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
        PRAGMA foreign_keys=ON

    Each public write commits immediately, so every mutator step succeeds
    or fails on its own.
    """

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the store.

        Args:
            db_path: Path to database file. Defaults to {instance_root}/cache/killlog.db.
        """
        if db_path is None:
            from ...core.config import get_settings

            db_path = get_settings().db_path

        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """
        Initialize database, running migrations if needed.

        Must be called before any other operations.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)

        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await self._db.execute("PRAGMA synchronous=NORMAL")
        await self._db.execute("PRAGMA foreign_keys=ON")

        runner = MigrationRunner(self._db)
        await runner.run_migrations()

        self._db.row_factory = aiosqlite.Row

        logger.info("Credential store initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Credential store closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection, raising if not initialized."""
        if self._db is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._db

    async def _write(self, sql: str, params: tuple = ()) -> int:
        cursor = await self.db.execute(sql, params)
        await self.db.commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    async def get_credential(
        self, key_id: int, v_code: Optional[str] = None
    ) -> Optional[Credential]:
        """
        Look up a credential.

        Without a vCode the most recently added credential for the keyID is
        returned (a key whose vCode was regenerated may be stored twice).
        """
        if v_code is None:
            cursor = await self.db.execute(
                """
                SELECT * FROM credentials WHERE key_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT 1
                """,
                (key_id,),
            )
        else:
            cursor = await self.db.execute(
                "SELECT * FROM credentials WHERE key_id = ? AND v_code = ?",
                (key_id, v_code),
            )
        row = await cursor.fetchone()
        if not row:
            return None
        return Credential(
            key_id=row["key_id"],
            v_code=row["v_code"],
            owner_user_id=row["owner_user_id"],
            label=row["label"],
            last_validation=row["last_validation"],
            error_code=row["error_code"],
        )

    async def insert_credential(
        self,
        key_id: int,
        v_code: str,
        owner_user_id: int = 0,
        label: Optional[str] = None,
    ) -> None:
        """Insert a credential. Raises aiosqlite.IntegrityError if it exists."""
        await self._write(
            """
            INSERT INTO credentials (key_id, v_code, owner_user_id, label, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (key_id, v_code, owner_user_id, label, int(time.time())),
        )

    async def assign_owner(
        self, key_id: int, owner_user_id: int, label: Optional[str] = None
    ) -> int:
        return await self._write(
            """
            UPDATE credentials SET owner_user_id = ?, label = COALESCE(?, label)
            WHERE key_id = ? AND owner_user_id = 0
            """,
            (owner_user_id, label, key_id),
        )

    async def mark_credential_error(self, key_id: int, code: int) -> int:
        return await self._write(
            "UPDATE credentials SET error_code = ? WHERE key_id = ?",
            (code, key_id),
        )

    async def mark_validated(self, key_id: int, when: int, clear_error: bool = False) -> int:
        if clear_error:
            return await self._write(
                "UPDATE credentials SET last_validation = ?, error_code = 0 WHERE key_id = ?",
                (when, key_id),
            )
        return await self._write(
            "UPDATE credentials SET last_validation = ? WHERE key_id = ?",
            (when, key_id),
        )

    async def delete_credential(self, key_id: int) -> int:
        """Delete every credential row for the keyID, then its characters and fault log."""
        deleted = await self._write("DELETE FROM credentials WHERE key_id = ?", (key_id,))
        await self.delete_characters_for_key(key_id)
        await self._write("DELETE FROM character_errors WHERE key_id = ?", (key_id,))
        return deleted

    # -------------------------------------------------------------------------
    # Characters
    # -------------------------------------------------------------------------

    async def upsert_character(
        self,
        key_id: int,
        character_id: int,
        character_name: str = "",
        is_director: Optional[bool] = None,
    ) -> None:
        # ON CONFLICT keeps api_row_id and modulus, so shard placement survives
        await self._write(
            """
            INSERT INTO characters (key_id, character_id, character_name, is_director)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (key_id, character_id) DO UPDATE SET
                character_name = excluded.character_name,
                is_director = excluded.is_director
            """,
            (key_id, character_id, character_name, _director_to_db(is_director)),
        )

    async def get_character(self, key_id: int, character_id: int) -> Optional[Character]:
        cursor = await self.db.execute(
            "SELECT * FROM characters WHERE key_id = ? AND character_id = ?",
            (key_id, character_id),
        )
        row = await cursor.fetchone()
        return self._row_to_character(row) if row else None

    async def list_characters(self, key_id: Optional[int] = None) -> list[Character]:
        if key_id is None:
            cursor = await self.db.execute("SELECT * FROM characters ORDER BY api_row_id")
        else:
            cursor = await self.db.execute(
                "SELECT * FROM characters WHERE key_id = ? ORDER BY api_row_id",
                (key_id,),
            )
        rows = await cursor.fetchall()
        return [self._row_to_character(row) for row in rows]

    async def set_director(self, key_id: int, character_id: int, is_director: bool) -> int:
        return await self._write(
            "UPDATE characters SET is_director = ? WHERE key_id = ? AND character_id = ?",
            (_director_to_db(is_director), key_id, character_id),
        )

    async def delete_character(self, key_id: int, character_id: int) -> int:
        return await self._write(
            "DELETE FROM characters WHERE key_id = ? AND character_id = ?",
            (key_id, character_id),
        )

    async def delete_characters_for_key(self, key_id: int) -> int:
        return await self._write("DELETE FROM characters WHERE key_id = ?", (key_id,))

    async def set_cached_until(self, key_id: int, character_id: int, cached_until: int) -> int:
        return await self._write(
            "UPDATE characters SET cached_until = ? WHERE key_id = ? AND character_id = ?",
            (cached_until, key_id, character_id),
        )

    async def set_character_error(self, key_id: int, character_id: int, code: int) -> int:
        """
        Record the latest error code for a (key, character) pair.

        Written to the character row when it still exists and to
        character_errors regardless, so the code survives a cleared
        character list. Returns the number of character rows updated.
        """
        cursor = await self.db.execute(
            "UPDATE characters SET error_code = ? WHERE key_id = ? AND character_id = ?",
            (code, key_id, character_id),
        )
        await self.db.execute(
            """
            INSERT INTO character_errors (key_id, character_id, error_code, recorded_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (key_id, character_id) DO UPDATE SET
                error_code = excluded.error_code,
                recorded_at = excluded.recorded_at
            """,
            (key_id, character_id, code, int(time.time())),
        )
        await self.db.commit()
        return cursor.rowcount

    async def get_character_error(self, key_id: int, character_id: int) -> Optional[int]:
        """Latest recorded error code for the pair, or None if never recorded."""
        cursor = await self.db.execute(
            "SELECT error_code FROM character_errors WHERE key_id = ? AND character_id = ?",
            (key_id, character_id),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def record_fetch_success(
        self, key_id: int, character_id: int, cached_until: Optional[int] = None
    ) -> int:
        cursor = await self.db.execute(
            """
            UPDATE characters
            SET error_code = 0, cached_until = COALESCE(?, cached_until)
            WHERE key_id = ? AND character_id = ?
            """,
            (cached_until, key_id, character_id),
        )
        await self.db.execute(
            """
            UPDATE character_errors SET error_code = 0, recorded_at = ?
            WHERE key_id = ? AND character_id = ?
            """,
            (int(time.time()), key_id, character_id),
        )
        await self.db.commit()
        return cursor.rowcount

    @staticmethod
    def _row_to_character(row: aiosqlite.Row) -> Character:
        return Character(
            api_row_id=row["api_row_id"],
            key_id=row["key_id"],
            character_id=row["character_id"],
            character_name=row["character_name"],
            is_director=_director_from_db(row["is_director"]),
            cached_until=row["cached_until"],
            error_code=row["error_code"],
            modulus=row["modulus"],
        )

    # -------------------------------------------------------------------------
    # Sharding
    # -------------------------------------------------------------------------

    async def delete_unset_director_characters(self) -> int:
        return await self._write("DELETE FROM characters WHERE is_director IS NULL")

    async def get_max_modulus(self) -> Optional[int]:
        cursor = await self.db.execute("SELECT MAX(modulus) FROM characters")
        row = await cursor.fetchone()
        return row[0] if row else None

    async def reset_moduli(self) -> int:
        return await self._write("UPDATE characters SET modulus = NULL")

    async def assign_moduli(self, shard_count: int) -> int:
        if shard_count < 1:
            raise ValueError(f"shard_count must be positive, got {shard_count}")
        return await self._write(
            "UPDATE characters SET modulus = api_row_id % ? WHERE modulus IS NULL",
            (shard_count,),
        )

    async def get_due_characters(self, shard_index: int, now: int) -> list[PollTarget]:
        # A keyID may be stored with more than one vCode; poll with the newest
        # healthy one.
        cursor = await self.db.execute(
            """
            SELECT c.key_id, c.character_id, c.is_director,
                (SELECT cr.v_code FROM credentials cr
                 WHERE cr.key_id = c.key_id AND cr.error_code = 0
                 ORDER BY cr.created_at DESC, cr.rowid DESC LIMIT 1) AS v_code
            FROM characters c
            WHERE c.modulus = ? AND c.cached_until <= ?
            ORDER BY c.key_id, c.api_row_id
            """,
            (shard_index, now),
        )
        rows = await cursor.fetchall()
        return [
            PollTarget(
                key_id=row["key_id"],
                v_code=row["v_code"],
                character_id=row["character_id"],
                is_director=bool(row["is_director"]),
            )
            for row in rows
            if row["v_code"] is not None
        ]

    # -------------------------------------------------------------------------
    # Killmails
    # -------------------------------------------------------------------------

    async def kill_exists(self, kill_id: int) -> bool:
        cursor = await self.db.execute("SELECT 1 FROM killmails WHERE kill_id = ?", (kill_id,))
        return await cursor.fetchone() is not None

    async def insert_killmail(
        self, kill_id: int, kill_hash: str, source: str, kill_json: str
    ) -> bool:
        inserted = await self._write(
            """
            INSERT OR IGNORE INTO killmails (kill_id, hash, source, kill_json, processed, ingested_at)
            VALUES (?, ?, ?, ?, 0, ?)
            """,
            (kill_id, kill_hash, source, kill_json, int(time.time())),
        )
        return inserted > 0

    async def get_killmail(self, kill_id: int) -> Optional[StoredKillmail]:
        cursor = await self.db.execute("SELECT * FROM killmails WHERE kill_id = ?", (kill_id,))
        row = await cursor.fetchone()
        if not row:
            return None
        return StoredKillmail(
            kill_id=row["kill_id"],
            hash=row["hash"],
            source=row["source"],
            kill_json=row["kill_json"],
            processed=bool(row["processed"]),
            ingested_at=row["ingested_at"],
        )

    async def count_killmails(self) -> int:
        cursor = await self.db.execute("SELECT COUNT(*) FROM killmails")
        row = await cursor.fetchone()
        return row[0] if row else 0

    # -------------------------------------------------------------------------
    # Global Values
    # -------------------------------------------------------------------------

    async def get_storage(self, locker: str) -> Optional[str]:
        cursor = await self.db.execute("SELECT contents FROM storage WHERE locker = ?", (locker,))
        row = await cursor.fetchone()
        return row[0] if row else None

    async def set_storage(self, locker: str, contents: str) -> None:
        await self._write(
            """
            INSERT INTO storage (locker, contents, updated_at) VALUES (?, ?, ?)
            ON CONFLICT (locker) DO UPDATE SET
                contents = excluded.contents,
                updated_at = excluded.updated_at
            """,
            (locker, contents, int(time.time())),
        )

    async def delete_storage(self, locker: str) -> int:
        return await self._write("DELETE FROM storage WHERE locker = ?", (locker,))

    async def get_fetches_per_second(self, default: int = DEFAULT_FETCHES_PER_SECOND) -> int:
        """Shard count from APIFetchesPerSecond, or default when unset or invalid."""
        raw = await self.get_storage(STORAGE_FETCHES_PER_SECOND)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError:
            logger.warning("Ignoring non-numeric %s value: %r", STORAGE_FETCHES_PER_SECOND, raw)
            return default
        if value < 1:
            logger.warning("Ignoring non-positive %s value: %d", STORAGE_FETCHES_PER_SECOND, value)
            return default
        return value

    async def set_fetches_per_second(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"fetches per second must be positive, got {value}")
        await self.set_storage(STORAGE_FETCHES_PER_SECOND, str(value))

    async def get_api_stop(self) -> Optional[int]:
        """Timestamp in ApiStop904, or None when never set or unreadable."""
        raw = await self.get_storage(STORAGE_API_STOP)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring non-numeric %s value: %r", STORAGE_API_STOP, raw)
            return None

    async def set_api_stop(self, until: int) -> None:
        await self.set_storage(STORAGE_API_STOP, str(until))

    async def clear_api_stop(self) -> int:
        return await self.delete_storage(STORAGE_API_STOP)
