"""
KillLog Polling Data Models.

Result records returned by workers and the scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class WorkerStats:
    """Counters for one FetchWorker run."""

    shard_index: int
    shard_count: int
    stopped: bool = False
    keys_checked: int = 0
    keys_rejected: int = 0
    characters_due: int = 0
    characters_polled: int = 0
    characters_skipped: int = 0
    fetch_errors: int = 0
    unexpected_errors: int = 0
    kills_inserted: int = 0
    error_codes: dict[int, int] = field(default_factory=dict)

    def record_error(self, code: int) -> None:
        self.fetch_errors += 1
        self.error_codes[code] = self.error_codes.get(code, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "shard_index": self.shard_index,
            "shard_count": self.shard_count,
            "stopped": self.stopped,
            "keys_checked": self.keys_checked,
            "keys_rejected": self.keys_rejected,
            "characters_due": self.characters_due,
            "characters_polled": self.characters_polled,
            "characters_skipped": self.characters_skipped,
            "fetch_errors": self.fetch_errors,
            "unexpected_errors": self.unexpected_errors,
            "kills_inserted": self.kills_inserted,
            "error_codes": {str(code): count for code, count in sorted(self.error_codes.items())},
        }


@dataclass
class ShardOutcome:
    """What happened to one shard launch."""

    shard_index: int
    launched: bool
    stats: Optional[WorkerStats] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "shard_index": self.shard_index,
            "launched": self.launched,
            "stats": self.stats.to_dict() if self.stats else None,
            "error": self.error,
        }


@dataclass
class CycleResult:
    """
    Outcome of one scheduling cycle.

    tasks holds the detached shard tasks; await them (or call
    FetchScheduler.drain()) to collect their ShardOutcome values.
    """

    fetches_per_second: int = 0
    stopped_until: Optional[int] = None
    modulus_reset: bool = False
    purged_characters: int = 0
    assigned_characters: int = 0
    tasks: list = field(default_factory=list)

    @property
    def stopped(self) -> bool:
        return self.stopped_until is not None

    @property
    def task_count(self) -> int:
        return len(self.tasks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fetches_per_second": self.fetches_per_second,
            "stopped_until": self.stopped_until,
            "modulus_reset": self.modulus_reset,
            "purged_characters": self.purged_characters,
            "assigned_characters": self.assigned_characters,
            "shard_tasks": len(self.tasks),
        }
