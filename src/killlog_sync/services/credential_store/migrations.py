"""
Schema Migrations for the Credential Store.

Versioned SQL scripts in ./migrations are applied in order on startup and
recorded in schema_migrations, so an existing killlog.db is upgraded in place.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


@dataclass(frozen=True)
class Migration:
    """A migration script on disk: NNN_description.sql."""

    version: int
    description: str
    path: Path

    @classmethod
    def from_path(cls, path: Path) -> Migration | None:
        """Parse a migration file name, or None if it doesn't follow NNN_name.sql."""
        prefix, _, rest = path.stem.partition("_")
        try:
            version = int(prefix)
        except ValueError:
            return None
        return cls(version=version, description=rest.replace("_", " ") or path.stem, path=path)


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[Migration]:
    """List migrations in version order, skipping malformed file names."""
    found: list[Migration] = []
    for path in directory.glob("*.sql"):
        migration = Migration.from_path(path)
        if migration is None:
            logger.warning("Skipping invalid migration file: %s", path.name)
            continue
        found.append(migration)
    return sorted(found, key=lambda m: m.version)


class MigrationRunner:
    """Apply pending migrations to an open connection."""

    def __init__(self, db: aiosqlite.Connection, directory: Path = MIGRATIONS_DIR):
        self.db = db
        self.directory = directory

    async def current_version(self) -> int:
        """Latest applied migration version, or 0 on a fresh database."""
        await self._ensure_migrations_table()
        cursor = await self.db.execute("SELECT MAX(version) FROM schema_migrations")
        row = await cursor.fetchone()
        return row[0] if row and row[0] is not None else 0

    async def run_migrations(self) -> int:
        """
        Apply pending migrations.

        Returns:
            Number of migrations applied.
        """
        current = await self.current_version()
        pending = [m for m in discover_migrations(self.directory) if m.version > current]

        for migration in pending:
            await self._apply(migration)

        if pending:
            logger.info("Applied %d database migration(s)", len(pending))
        return len(pending)

    async def _ensure_migrations_table(self) -> None:
        await self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL,
                description TEXT
            )
            """
        )
        await self.db.commit()

    async def _apply(self, migration: Migration) -> None:
        logger.info("Applying migration %03d: %s", migration.version, migration.description)

        await self.db.executescript(migration.path.read_text())
        await self.db.execute(
            "INSERT INTO schema_migrations (version, applied_at, description) VALUES (?, ?, ?)",
            (migration.version, int(time.time()), migration.description),
        )
        await self.db.commit()
