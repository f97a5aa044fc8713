#!/usr/bin/env python3
"""
Killlog Sync CLI Entry Point

Provides command-line interface for KillLog polling and key management.
Run with: python -m killlog_sync <command> [args]
"""

import argparse
import json
import sys

from .core import get_utc_timestamp


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": get_utc_timestamp(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


# =============================================================================
# Built-in Commands
# =============================================================================


def cmd_help(args: argparse.Namespace) -> dict:
    """Show help message."""
    help_text = """
═══════════════════════════════════════════════════════════════════
Killlog Sync
───────────────────────────────────────────────────────────────────

Polling Commands:
  killlog-fetch <shard> <count>  Poll the due characters of one shard
  killlog-cycle                  Assign shards, run every shard once, wait
  killlog-run [--interval S]     Run cycles until Ctrl+C (default: 60s)

Key Commands:
  killlog-check <keyID> <vCode>  Check a key without storing it
  killlog-add <keyID> <vCode>    Add a key and its characters
                                 --user N, --label <text>
  killlog-revalidate <keyID> <vCode>
                                 Re-check a stored key, clear its error

Global Values:
  killlog-config                 Show shard count and global stop
                                 --fetches-per-second N, --clear-stop

System Commands:
  help                           Show this help message

Examples:
  killlog-sync killlog-add 1234567 abcdef... --user 42 --label main
  killlog-sync killlog-config --fetches-per-second 20
  killlog-sync killlog-cycle
  killlog-sync killlog-fetch 3 20

Environment:
  KILLLOG_INSTANCE_ROOT, KILLLOG_API_BASE_URL, KILLLOG_LOG_LEVEL,
  KILLLOG_NO_RETRY (see killlog_sync.core.config)

Usage:
  python3 -m killlog_sync <command> [args]

═══════════════════════════════════════════════════════════════════
"""
    print(help_text)
    return {}


# =============================================================================
# Main Entry Point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="killlog-sync",
        description="Killlog Sync - sharded KillLog polling for EVE Online API keys",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Built-in commands
    help_parser = subparsers.add_parser("help", help="Show help message")
    help_parser.set_defaults(func=cmd_help)

    from .commands import killlog

    killlog.register_parsers(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Default to help if no command
    if not args.command:
        cmd_help(args)
        return 0

    # Check if command has a handler function
    if not hasattr(args, "func"):
        output_error(
            f"Unknown command: {args.command}",
            error_type="unknown_command",
            hint="Run 'killlog-sync help' for usage",
        )

    # Execute command
    try:
        result = args.func(args)

        # Output result if it's a dict (JSON response)
        if isinstance(result, dict) and result:
            output_json(result)

            # Return non-zero exit code if result contains error
            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_error(str(e), error_type="command_error", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
