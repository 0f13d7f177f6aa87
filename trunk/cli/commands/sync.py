"""Sync command: one round trip with the remote event table."""

import asyncio
import logging
from dataclasses import asdict
from typing import TYPE_CHECKING, Optional

from trunk.config import Settings, get_settings
from trunk.sync.engine import SyncEngine
from trunk.sync.remote import create_remote_from_settings

from .helpers import print_json

if TYPE_CHECKING:
    from trunk.protocols import RemoteEventTable
    from trunk.storage.sqlite import SQLiteEventLog
    from trunk.storage.store import EventStore

logger = logging.getLogger(__name__)


def cmd_sync(
    args,
    store: "EventStore",
    persistence: Optional["SQLiteEventLog"] = None,
    remote: Optional["RemoteEventTable"] = None,
    settings: Optional[Settings] = None,
):
    """Run an incremental (or, with --full, a full) sync."""
    settings = settings or get_settings()
    if remote is None:
        remote = create_remote_from_settings(settings)

    engine = SyncEngine(
        store,
        remote=remote,
        user_id=settings.user_id,
        persistence=persistence,
        timeout=settings.sync_timeout,
    )
    run = engine.force_full_sync if args.full else engine.smart_sync
    outcome = asyncio.run(run())

    if args.json:
        result = asdict(outcome)
        result["pending"] = engine.pending.count
        result["last_confirmed"] = engine.last_confirmed_timestamp
        print_json(result)
        return

    if outcome.ok:
        print(f"Synced ({outcome.mode}): {outcome.pulled} events")
    else:
        print(f"Sync failed: {outcome.error}")
    if engine.pending.count:
        print(f"{engine.pending.count} events waiting to upload")
