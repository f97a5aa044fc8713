"""
Credential Store Protocol Interface.

Defines the records and the data-access interface the killlog services rely
on. The store applies no policy: deciding *what* to write after a remote
error is the classifier's and mutator's job.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class Credential:
    """An API key (keyID + vCode) and its health."""

    key_id: int
    v_code: str
    owner_user_id: int = 0
    label: Optional[str] = None
    last_validation: Optional[int] = None  # Unix timestamp
    error_code: int = 0

    @property
    def is_claimed(self) -> bool:
        return self.owner_user_id != 0

    @property
    def is_errored(self) -> bool:
        return self.error_code != 0


@dataclass
class Character:
    """A character polled through a credential."""

    api_row_id: int
    key_id: int
    character_id: int
    character_name: str = ""
    is_director: Optional[bool] = None  # None = unknown (incomplete validation)
    cached_until: int = 0  # Unix timestamp; not polled before this
    error_code: int = 0
    modulus: Optional[int] = None  # Shard, None = unassigned


@dataclass
class PollTarget:
    """A character due for polling, joined with its key's vCode."""

    key_id: int
    v_code: str
    character_id: int
    is_director: bool


@dataclass
class StoredKillmail:
    """A killmail row as persisted."""

    kill_id: int
    hash: str
    source: str
    kill_json: str
    processed: bool
    ingested_at: int


# =============================================================================
# Protocol Interface
# =============================================================================


@runtime_checkable
class CredentialStore(Protocol):
    """
    Data access for credentials, characters, killmails and global values.

    Every mutating method commits on its own, so a failure of one write
    never rolls back another. Methods returning int
    return the affected row count.
    """

    # Lifecycle

    @abstractmethod
    async def initialize(self) -> None:
        """Open the database and run migrations."""
        ...

    @abstractmethod
    async def close(self) -> None: ...

    # Credentials

    @abstractmethod
    async def get_credential(self, key_id: int, v_code: Optional[str] = None) -> Optional[Credential]:
        """Look up a credential by keyID, optionally requiring the vCode."""
        ...

    @abstractmethod
    async def insert_credential(
        self,
        key_id: int,
        v_code: str,
        owner_user_id: int = 0,
        label: Optional[str] = None,
    ) -> None: ...

    @abstractmethod
    async def assign_owner(self, key_id: int, owner_user_id: int, label: Optional[str] = None) -> int:
        """Give an anonymously submitted key to a user."""
        ...

    @abstractmethod
    async def mark_credential_error(self, key_id: int, code: int) -> int: ...

    @abstractmethod
    async def mark_validated(self, key_id: int, when: int, clear_error: bool = False) -> int:
        """Record a successful validation, optionally clearing the error mark."""
        ...

    @abstractmethod
    async def delete_credential(self, key_id: int) -> int:
        """Delete a credential and all of its characters."""
        ...

    # Characters

    @abstractmethod
    async def upsert_character(
        self,
        key_id: int,
        character_id: int,
        character_name: str = "",
        is_director: Optional[bool] = None,
    ) -> None:
        """Insert a character, or refresh name/director flag keeping its row id."""
        ...

    @abstractmethod
    async def get_character(self, key_id: int, character_id: int) -> Optional[Character]: ...

    @abstractmethod
    async def list_characters(self, key_id: Optional[int] = None) -> list[Character]: ...

    @abstractmethod
    async def set_director(self, key_id: int, character_id: int, is_director: bool) -> int: ...

    @abstractmethod
    async def delete_character(self, key_id: int, character_id: int) -> int: ...

    @abstractmethod
    async def delete_characters_for_key(self, key_id: int) -> int: ...

    @abstractmethod
    async def set_cached_until(self, key_id: int, character_id: int, cached_until: int) -> int: ...

    @abstractmethod
    async def set_character_error(self, key_id: int, character_id: int, code: int) -> int:
        """Record the latest error code for the pair, even if its row is gone."""
        ...

    @abstractmethod
    async def get_character_error(self, key_id: int, character_id: int) -> Optional[int]: ...

    @abstractmethod
    async def record_fetch_success(
        self, key_id: int, character_id: int, cached_until: Optional[int] = None
    ) -> int:
        """Clear the character's error code and store the response's cachedUntil."""
        ...

    # Sharding

    @abstractmethod
    async def delete_unset_director_characters(self) -> int: ...

    @abstractmethod
    async def get_max_modulus(self) -> Optional[int]: ...

    @abstractmethod
    async def reset_moduli(self) -> int: ...

    @abstractmethod
    async def assign_moduli(self, shard_count: int) -> int:
        """Set modulus = api_row_id % shard_count where modulus is unassigned."""
        ...

    @abstractmethod
    async def get_due_characters(self, shard_index: int, now: int) -> list[PollTarget]:
        """Characters of a shard whose backoff has expired and whose key is healthy."""
        ...

    # Killmails

    @abstractmethod
    async def kill_exists(self, kill_id: int) -> bool: ...

    @abstractmethod
    async def insert_killmail(self, kill_id: int, kill_hash: str, source: str, kill_json: str) -> bool:
        """Insert if absent. Returns True when a row was added."""
        ...

    @abstractmethod
    async def get_killmail(self, kill_id: int) -> Optional[StoredKillmail]: ...

    @abstractmethod
    async def count_killmails(self) -> int: ...

    # Global values

    @abstractmethod
    async def get_storage(self, locker: str) -> Optional[str]: ...

    @abstractmethod
    async def set_storage(self, locker: str, contents: str) -> None: ...

    @abstractmethod
    async def delete_storage(self, locker: str) -> int: ...

    @abstractmethod
    async def get_fetches_per_second(self, default: int = 30) -> int:
        """Current shard count, read fresh from storage."""
        ...

    @abstractmethod
    async def set_fetches_per_second(self, value: int) -> None: ...

    @abstractmethod
    async def get_api_stop(self) -> Optional[int]:
        """Timestamp until which polling is suspended, if any."""
        ...

    @abstractmethod
    async def set_api_stop(self, until: int) -> None: ...

    @abstractmethod
    async def clear_api_stop(self) -> int: ...
