"""
KillLog Polling.

Sharded polling of character kill logs through stored API keys.

Key Components:
- FetchScheduler: assigns shards and launches one FetchWorker per shard
- FetchWorker: polls one shard's due characters sequentially
- AccessGate: validates keys and their KillLog access bit
- classify / StateMutator: turn remote error codes into state changes
- KillmailIngester: deduplicating killmail insert
- enroll_key / revalidate_key: adding keys and clearing error marks

Usage:
    from killlog_sync.services.killlog import FetchScheduler

    scheduler = FetchScheduler(store, client)
    await scheduler.run_cycle()
    outcomes = await scheduler.drain()
"""

from .access_gate import AccessGate, GateFailure, GateResult, has_killlog_access
from .classifier import Action, classify, is_known_code
from .enrollment import EnrollmentResult, enroll_key, revalidate_key
from .ingest import KillmailIngester, canonical_json, kill_hash
from .models import CycleResult, ShardOutcome, WorkerStats
from .mutator import MutationResult, StateMutator
from .scheduler import FetchScheduler, ShardLocks
from .worker import FetchWorker, kill_source

__all__ = [
    # Access gate
    "AccessGate",
    "GateFailure",
    "GateResult",
    "has_killlog_access",
    # Classification
    "Action",
    "classify",
    "is_known_code",
    # Mutation
    "MutationResult",
    "StateMutator",
    # Ingestion
    "KillmailIngester",
    "canonical_json",
    "kill_hash",
    # Scheduling
    "CycleResult",
    "FetchScheduler",
    "FetchWorker",
    "ShardLocks",
    "ShardOutcome",
    "WorkerStats",
    "kill_source",
    # Enrollment
    "EnrollmentResult",
    "enroll_key",
    "revalidate_key",
]
