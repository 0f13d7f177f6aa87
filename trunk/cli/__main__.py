"""
Trunk CLI - local event log, export/import and sync.

Usage:
    trunk status [--json]
    trunk events [--limit N] [--json]
    trunk export PATH
    trunk import PATH [--yes]
    trunk sync [--full] [--json]
    trunk clear --yes
"""

import argparse
import logging
import sys
from typing import List, Optional

from trunk.cli.commands import (
    cmd_clear,
    cmd_events,
    cmd_export,
    cmd_import,
    cmd_status,
    cmd_sync,
)
from trunk.config import get_settings
from trunk.protocols import TrunkError
from trunk.storage.sqlite import SQLiteEventLog
from trunk.storage.store import EventStore

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trunk",
        description="Event-sourced goal tracker",
    )
    parser.add_argument("--db", help="Database path (default: $TRUNK_HOME/trunk.db)", default=None)
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # status
    p_status = subparsers.add_parser("status", help="Show soil, water, sun and sprouts")
    p_status.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    # events
    p_events = subparsers.add_parser("events", help="List logged events")
    p_events.add_argument("--limit", "-l", type=int, default=20, help="Most recent N (0 for all)")
    p_events.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    # export / import
    p_export = subparsers.add_parser("export", help="Export the event log")
    p_export.add_argument("path", help="Output file")

    p_import = subparsers.add_parser("import", help="Import an export (current or legacy)")
    p_import.add_argument("path", help="Input file")
    p_import.add_argument("--yes", "-y", action="store_true", help="Replace a non-empty log")

    # sync
    p_sync = subparsers.add_parser("sync", help="Sync with the remote event table")
    p_sync.add_argument("--full", action="store_true", help="Re-pull everything")
    p_sync.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    # clear
    p_clear = subparsers.add_parser("clear", help="Delete the local event log")
    p_clear.add_argument("--yes", "-y", action="store_true", help="Confirm")

    return parser


def _report_quota() -> None:
    logger.error("Storage full: the last change is kept in memory only")


def _report_save_error(error: Exception) -> None:
    logger.error(f"Could not save event log: {error}")


def main(argv: Optional[List[str]] = None):
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        persistence = SQLiteEventLog(args.db or settings.database_path)
        store = EventStore(
            persistence,
            on_quota_error=_report_quota,
            on_save_error=_report_save_error,
        )
        store.load()
    except TrunkError as e:
        logger.error(f"Failed to open event log: {e}")
        sys.exit(1)

    try:
        if args.command == "status":
            cmd_status(args, store)
        elif args.command == "events":
            cmd_events(args, store)
        elif args.command == "export":
            cmd_export(args, store)
        elif args.command == "import":
            cmd_import(args, store)
        elif args.command == "sync":
            cmd_sync(args, store, persistence=persistence, settings=settings)
        elif args.command == "clear":
            cmd_clear(args, store)
    except TrunkError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)
    except OSError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
