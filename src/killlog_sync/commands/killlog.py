"""
KillLog CLI Commands.

Commands for running the sharded poller and managing keys.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from typing import Any, Awaitable, Callable, TypeVar

from ..core import get_utc_timestamp
from ..core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def _with_services(fn: Callable[..., Awaitable[T]]) -> T:
    """Open the store and API client, run fn(store, client), close both."""
    from ..core.api_client import EveApiClient
    from ..services.credential_store import SQLiteCredentialStore

    store = SQLiteCredentialStore()
    await store.initialize()
    try:
        async with EveApiClient() as client:
            return await fn(store, client)
    finally:
        await store.close()


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    def signal_handler():
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


# =============================================================================
# Polling Commands
# =============================================================================


def cmd_killlog_fetch(args: argparse.Namespace) -> dict:
    """
    Poll one shard.

    This is the per-shard entry point: SHARD is the shard index and COUNT
    the shard count the caller assigned moduli with.
    """
    from ..services.killlog import FetchWorker

    if args.count < 1 or not 0 <= args.shard < args.count:
        return {
            "error": "invalid_shard",
            "message": f"Shard {args.shard} is not in [0, {args.count})",
            "query_timestamp": get_utc_timestamp(),
        }

    async def run_fetch(store, client):
        return await FetchWorker(store, client).run(args.shard, args.count)

    stats = asyncio.run(_with_services(run_fetch))
    return {
        "query_timestamp": get_utc_timestamp(),
        **stats.to_dict(),
    }


def cmd_killlog_cycle(args: argparse.Namespace) -> dict:
    """Run one scheduling cycle and wait for its shard workers."""
    from ..services.killlog import FetchScheduler

    async def run_cycle(store, client):
        scheduler = FetchScheduler(store, client)
        result = await scheduler.run_cycle()
        outcomes = await scheduler.drain()
        return result, outcomes

    result, outcomes = asyncio.run(_with_services(run_cycle))

    stats = [o.stats for o in outcomes if o.stats is not None]
    return {
        "query_timestamp": get_utc_timestamp(),
        **result.to_dict(),
        "shards_run": sum(1 for o in outcomes if o.launched),
        "shards_skipped": sum(1 for o in outcomes if not o.launched),
        "shard_failures": [o.to_dict() for o in outcomes if o.error],
        "characters_polled": sum(s.characters_polled for s in stats),
        "kills_inserted": sum(s.kills_inserted for s in stats),
        "fetch_errors": sum(s.fetch_errors for s in stats),
    }


def cmd_killlog_run(args: argparse.Namespace) -> dict:
    """
    Run scheduling cycles until interrupted.

    Runs as a foreground process. Use Ctrl+C to stop.
    """
    from ..core.config import get_settings
    from ..services.killlog import FetchScheduler

    interval = args.interval if args.interval else get_settings().cycle_interval

    async def run_scheduler(store, client):
        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        scheduler = FetchScheduler(store, client)
        print(f"Scheduling cycles every {interval:g}s (Ctrl+C to stop)")
        return await scheduler.run_forever(interval=interval, stop_event=stop_event)

    try:
        cycles = asyncio.run(_with_services(run_scheduler))
    except KeyboardInterrupt:
        print("\nInterrupted")
        return {}

    return {
        "status": "stopped",
        "cycles": cycles,
        "query_timestamp": get_utc_timestamp(),
    }


# =============================================================================
# Key Commands
# =============================================================================


def cmd_killlog_check(args: argparse.Namespace) -> dict:
    """Check a key's validity and KillLog access without storing it."""
    from ..core.api_client import EveApiClient
    from ..services.killlog import AccessGate

    async def run_check():
        async with EveApiClient() as client:
            return await AccessGate(client).validate(args.key_id, args.v_code)

    result = asyncio.run(run_check())
    output: dict[str, Any] = {"query_timestamp": get_utc_timestamp(), **result.to_dict()}
    if not result.ok:
        output["error"] = "key_rejected"
    return output


def cmd_killlog_add(args: argparse.Namespace) -> dict:
    """Validate and store a key, enumerating its characters."""
    from ..services.killlog import enroll_key

    async def run_add(store, client):
        return await enroll_key(
            store, client, args.key_id, args.v_code, user_id=args.user, label=args.label
        )

    result = asyncio.run(_with_services(run_add))
    output: dict[str, Any] = {"query_timestamp": get_utc_timestamp(), **result.to_dict()}
    if not result.ok:
        output["error"] = "enrollment_failed"
    return output


def cmd_killlog_revalidate(args: argparse.Namespace) -> dict:
    """Re-check a stored key and clear its error mark if it passes."""
    from ..services.killlog import revalidate_key

    async def run_revalidate(store, client):
        return await revalidate_key(store, client, args.key_id, args.v_code)

    result = asyncio.run(_with_services(run_revalidate))
    output: dict[str, Any] = {"query_timestamp": get_utc_timestamp(), **result.to_dict()}
    if not result.ok:
        output["error"] = "revalidation_failed"
    return output


# =============================================================================
# Global Values
# =============================================================================


def cmd_killlog_config(args: argparse.Namespace) -> dict:
    """Show or change APIFetchesPerSecond and ApiStop904."""
    from ..core.config import get_settings
    from ..core.formatters import epoch_now, format_duration, format_timestamp
    from ..core.retry import get_retry_status
    from ..services.credential_store import SQLiteCredentialStore

    if args.fetches_per_second is not None and args.fetches_per_second < 1:
        return {
            "error": "invalid_value",
            "message": "--fetches-per-second must be at least 1",
            "query_timestamp": get_utc_timestamp(),
        }

    async def run_config():
        store = SQLiteCredentialStore()
        await store.initialize()
        try:
            if args.fetches_per_second is not None:
                await store.set_fetches_per_second(args.fetches_per_second)
                logger.info("APIFetchesPerSecond set to %d", args.fetches_per_second)
            if args.clear_stop:
                await store.clear_api_stop()
                logger.info("ApiStop904 cleared")

            fetches = await store.get_fetches_per_second(get_settings().fetches_per_second)
            stop_until = await store.get_api_stop()
            max_modulus = await store.get_max_modulus()
            return fetches, stop_until, max_modulus
        finally:
            await store.close()

    fetches, stop_until, max_modulus = asyncio.run(run_config())
    now = epoch_now()
    stopped = stop_until is not None and stop_until > now
    return {
        "query_timestamp": get_utc_timestamp(),
        "fetches_per_second": fetches,
        "api_stop_until": format_timestamp(stop_until),
        "api_stopped": stopped,
        "api_stop_remaining": format_duration(stop_until - now) if stopped else None,
        "max_modulus": max_modulus,
        "retry": get_retry_status(),
    }


# =============================================================================
# Parser Registration
# =============================================================================


def register_parsers(subparsers) -> None:
    """Register killlog command parsers."""

    # killlog-fetch
    fetch_parser = subparsers.add_parser(
        "killlog-fetch",
        help="Poll the kill logs of one shard",
    )
    fetch_parser.add_argument("shard", type=int, help="Shard index")
    fetch_parser.add_argument("count", type=int, help="Shard count")
    fetch_parser.set_defaults(func=cmd_killlog_fetch)

    # killlog-cycle
    cycle_parser = subparsers.add_parser(
        "killlog-cycle",
        help="Run one scheduling cycle and wait for it",
    )
    cycle_parser.set_defaults(func=cmd_killlog_cycle)

    # killlog-run
    run_parser = subparsers.add_parser(
        "killlog-run",
        help="Run scheduling cycles until interrupted",
    )
    run_parser.add_argument(
        "--interval",
        type=float,
        help="Seconds between cycles (default: 60)",
    )
    run_parser.set_defaults(func=cmd_killlog_run)

    # killlog-check
    check_parser = subparsers.add_parser(
        "killlog-check",
        help="Check a key for validity and KillLog access",
    )
    check_parser.add_argument("key_id", help="API keyID")
    check_parser.add_argument("v_code", help="API vCode")
    check_parser.set_defaults(func=cmd_killlog_check)

    # killlog-add
    add_parser = subparsers.add_parser(
        "killlog-add",
        help="Add a key and its characters",
    )
    add_parser.add_argument("key_id", help="API keyID")
    add_parser.add_argument("v_code", help="API vCode")
    add_parser.add_argument(
        "--user",
        type=int,
        default=0,
        help="Owning user ID (default: 0, anonymous)",
    )
    add_parser.add_argument("--label", help="Label for the key")
    add_parser.set_defaults(func=cmd_killlog_add)

    # killlog-revalidate
    revalidate_parser = subparsers.add_parser(
        "killlog-revalidate",
        help="Re-check a stored key and clear its error",
    )
    revalidate_parser.add_argument("key_id", help="API keyID")
    revalidate_parser.add_argument("v_code", help="API vCode")
    revalidate_parser.set_defaults(func=cmd_killlog_revalidate)

    # killlog-config
    config_parser = subparsers.add_parser(
        "killlog-config",
        help="Show or change the shard count and global stop",
    )
    config_parser.add_argument(
        "--fetches-per-second",
        type=int,
        help="Set APIFetchesPerSecond (shard count)",
    )
    config_parser.add_argument(
        "--clear-stop",
        action="store_true",
        help="Clear ApiStop904 and resume polling",
    )
    config_parser.set_defaults(func=cmd_killlog_config)
