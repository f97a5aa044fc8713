"""
Fetch Scheduler.

Assigns characters to shards and launches one FetchWorker per shard.

Shard assignment is modulus = api_row_id % shard_count. Assignments are kept
between cycles and only recomputed when the shard count changes, so a
character stays on the same worker as long as APIFetchesPerSecond does.

Each shard has an asyncio.Lock. A launch waits at most shard_lock_timeout
seconds for the previous worker of its shard; if that worker is still
running the launch is dropped for this cycle instead of queueing behind it.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from ...core.api_client import RemoteApi
from ...core.config import get_settings
from ...core.formatters import epoch_now, format_duration, format_timestamp
from ...core.logging import get_logger
from ..credential_store import CredentialStore
from .models import CycleResult, ShardOutcome
from .worker import FetchWorker

logger = get_logger(__name__)


class ShardLocks:
    """One lock per shard index, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}

    def get(self, shard_index: int) -> asyncio.Lock:
        lock = self._locks.get(shard_index)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[shard_index] = lock
        return lock

    def is_locked(self, shard_index: int) -> bool:
        lock = self._locks.get(shard_index)
        return lock is not None and lock.locked()

    async def acquire(self, shard_index: int, timeout: float) -> bool:
        """
        Acquire a shard's lock, waiting at most timeout seconds.

        Returns False when the lock could not be taken in time.
        """
        lock = self.get(shard_index)
        if not lock.locked():
            await lock.acquire()
            return True
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def release(self, shard_index: int) -> None:
        self.get(shard_index).release()


class FetchScheduler:
    """
    Run scheduling cycles.

    Usage:
        scheduler = FetchScheduler(store, client)
        result = await scheduler.run_cycle()
        outcomes = await scheduler.drain()
    """

    def __init__(
        self,
        store: CredentialStore,
        client: RemoteApi,
        locks: Optional[ShardLocks] = None,
        lock_timeout: Optional[float] = None,
        default_fetches_per_second: Optional[int] = None,
        worker_factory: Optional[Callable[[], FetchWorker]] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            store: Credential store shared by all workers
            client: Remote API client shared by all workers
            locks: Shard lock registry (default: a new one)
            lock_timeout: Seconds a launch waits for its shard lock
                (default: settings.shard_lock_timeout)
            default_fetches_per_second: Shard count when none is stored
                (default: settings.fetches_per_second)
            worker_factory: Builds the worker for each launch (tests)
        """
        settings = get_settings()
        self.store = store
        self.client = client
        self.locks = locks or ShardLocks()
        self.lock_timeout = (
            lock_timeout if lock_timeout is not None else settings.shard_lock_timeout
        )
        self.default_fetches_per_second = (
            default_fetches_per_second or settings.fetches_per_second
        )
        self._worker_factory = worker_factory or (lambda: FetchWorker(self.store, self.client))
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def run_cycle(self) -> CycleResult:
        """
        Run one scheduling cycle.

        Shard tasks are started in the background and returned in
        CycleResult.tasks; this method does not wait for them.
        """
        now = epoch_now()
        stop_until = await self.store.get_api_stop()
        if stop_until is not None and stop_until > now:
            logger.info(
                "Polling suspended for %s (until %s), no shards launched",
                format_duration(stop_until - now),
                format_timestamp(stop_until),
            )
            return CycleResult(stopped_until=stop_until)

        result = CycleResult()
        result.purged_characters = await self.store.delete_unset_director_characters()
        if result.purged_characters:
            logger.info("Removed %d character(s) with unset director flag", result.purged_characters)

        shard_count = await self.store.get_fetches_per_second(self.default_fetches_per_second)
        result.fetches_per_second = shard_count

        max_modulus = await self.store.get_max_modulus()
        current_count = (max_modulus if max_modulus is not None else -1) + 1
        if current_count != shard_count:
            logger.info("Shard count changed (%d -> %d), resetting moduli", current_count, shard_count)
            await self.store.reset_moduli()
            result.modulus_reset = True

        result.assigned_characters = await self.store.assign_moduli(shard_count)

        for shard_index in range(shard_count):
            task = asyncio.create_task(
                self._run_shard(shard_index, shard_count),
                name=f"killlog-shard-{shard_index}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            result.tasks.append(task)

        logger.debug("Cycle started %d shard task(s)", shard_count)
        return result

    async def _run_shard(self, shard_index: int, shard_count: int) -> ShardOutcome:
        if not await self.locks.acquire(shard_index, self.lock_timeout):
            logger.info("Shard %d still busy, skipping this cycle", shard_index)
            return ShardOutcome(shard_index=shard_index, launched=False)

        try:
            worker = self._worker_factory()
            stats = await worker.run(shard_index, shard_count)
            return ShardOutcome(shard_index=shard_index, launched=True, stats=stats)
        except Exception as e:
            logger.exception("Shard %d worker failed", shard_index)
            return ShardOutcome(shard_index=shard_index, launched=True, error=str(e))
        finally:
            self.locks.release(shard_index)

    async def drain(self) -> list[ShardOutcome]:
        """Wait for every outstanding shard task and return their outcomes."""
        outcomes: list[ShardOutcome] = []
        collected: set[asyncio.Task] = set()
        while True:
            # Finished tasks leave the set via a done callback, which can run
            # after gather() returns.
            pending = [task for task in self._tasks if task not in collected]
            if not pending:
                break
            collected.update(pending)
            outcomes.extend(await asyncio.gather(*pending))
        return sorted(outcomes, key=lambda o: o.shard_index)

    async def run_forever(
        self,
        interval: Optional[float] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Run cycles every interval seconds until stop_event is set.

        Returns:
            Number of cycles run
        """
        if interval is None:
            interval = get_settings().cycle_interval
        stop_event = stop_event or asyncio.Event()

        cycles = 0
        while not stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Scheduling cycle failed")
            cycles += 1

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        await self.drain()
        return cycles
