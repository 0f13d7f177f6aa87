"""Sync engine: pushes local events up and merges remote events down.

- Pushes are per event and idempotent: the remote rejects a repeated
  client_id, which counts as success
- Pulls are incremental (rows created after the last confirmed
  ``created_at``) or full (everything, replacing the local log)
- A full pull keeps local events the remote has not confirmed yet
- One sync runs at a time; later callers wait for the one in flight
- Failures never raise out of ``smart_sync``; they come back as a
  ``SyncOutcome`` and are recorded on ``status``
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from trunk.protocols import RemoteEventTable, StorageError, SyncError
from trunk.storage.sqlite import SQLiteEventLog
from trunk.storage.store import EventStore
from trunk.types import Event, event_dedupe_key, event_entity_id
from trunk.utils import generate_client_id

from .pending import PendingUploads
from .remote import DuplicateEventError, local_to_row, row_to_event
from .retry import Backoff
from .status import SyncState, SyncStatusTracker

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync"
CACHE_VERSION_KEY = "cache_version"
CACHE_VERSION = "1"

MODE_INCREMENTAL = "incremental"
MODE_FULL = "full"

REMOTE_NOT_CONFIGURED = "Remote not configured"
NOT_AUTHENTICATED = "Not authenticated"


@dataclass
class SyncOutcome:
    """Result of one sync round."""

    status: str
    pulled: int = 0
    error: Optional[str] = None
    mode: str = MODE_INCREMENTAL

    @property
    def ok(self) -> bool:
        return self.status == SyncState.SUCCESS.value


def _fallback_key(event: Event) -> str:
    return f"{event.type}|{event_entity_id(event)}|{event.timestamp}"


def _rows_to_events(rows: List[Dict[str, Any]]) -> List[Event]:
    events = []
    for row in rows:
        event = row_to_event(row)
        if event is None:
            logger.debug("Skipping malformed remote row %s", row.get("id"))
            continue
        events.append(event)
    return events


class SyncEngine:
    """Keeps an ``EventStore`` in step with a ``RemoteEventTable``.

    Args:
        store: The local event store.
        remote: The remote table. Without one every sync reports
            "Remote not configured".
        user_id: The authenticated user. Without one every sync reports
            "Not authenticated".
        pending: Pending-upload tracker (created from ``persistence`` if omitted).
        persistence: SQLite mirror for sync metadata.
        timeout: Seconds allowed for each remote call.
    """

    def __init__(
        self,
        store: EventStore,
        remote: Optional[RemoteEventTable] = None,
        user_id: Optional[str] = None,
        pending: Optional[PendingUploads] = None,
        persistence: Optional[SQLiteEventLog] = None,
        timeout: float = 15.0,
    ):
        self.store = store
        self.remote = remote
        self.user_id = user_id
        self.timeout = timeout
        self._persistence = persistence

        if pending is None:
            pending = PendingUploads(persistence)
            pending.load()
        self.pending = pending

        self.backoff = Backoff()
        self.status = SyncStatusTracker(lambda: self.pending.count)

        self._meta: Dict[str, Optional[str]] = {}
        for key in (LAST_SYNC_KEY, CACHE_VERSION_KEY):
            self._meta[key] = self._load_meta(key)
        self.status.last_confirmed_timestamp = self._meta[LAST_SYNC_KEY]

        self._in_flight: Optional[asyncio.Future] = None
        self._push_tasks: Set[asyncio.Task] = set()

    # === Metadata ===

    def _load_meta(self, key: str) -> Optional[str]:
        if self._persistence is None:
            return None
        try:
            return self._persistence.get_meta(key)
        except StorageError as e:
            logger.warning(f"Could not read sync metadata {key}: {e}")
            return None

    def _set_meta(self, key: str, value: Optional[str]) -> None:
        self._meta[key] = value
        if self._persistence is None:
            return
        try:
            if value is None:
                self._persistence.delete_meta(key)
            else:
                self._persistence.set_meta(key, value)
        except StorageError as e:
            logger.warning(f"Could not write sync metadata {key}: {e}")

    @property
    def last_confirmed_timestamp(self) -> Optional[str]:
        return self._meta.get(LAST_SYNC_KEY)

    def _confirm(self, created_at: Optional[str]) -> None:
        if not created_at:
            return
        self._set_meta(LAST_SYNC_KEY, created_at)
        self.status.last_confirmed_timestamp = created_at

    def _cache_valid(self) -> bool:
        return self._meta.get(CACHE_VERSION_KEY) == CACHE_VERSION

    def _invalidate_cache(self) -> None:
        self._set_meta(CACHE_VERSION_KEY, None)

    # === Remote calls ===

    def _unavailable(self) -> Optional[str]:
        if self.remote is None:
            return REMOTE_NOT_CONFIGURED
        if not self.user_id:
            return NOT_AUTHENTICATED
        return None

    async def _call(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SyncError(f"Remote call timed out after {self.timeout}s") from e

    async def _insert(self, event: Event) -> Optional[str]:
        """Insert one event. Returns an error message, or None on success or duplicate."""
        try:
            await self._call(self.remote.insert_event(local_to_row(event, self.user_id)))
        except DuplicateEventError:
            logger.debug("Event %s already on remote", event.client_id)
        except Exception as e:
            logger.warning(f"Upload of {event.client_id} failed: {e}")
            return str(e)
        return None

    # === Push ===

    async def push_event(self, event: Event) -> Optional[str]:
        """Upload one event, tracking it as pending until the remote confirms it.

        Returns:
            None on success, otherwise the error message. On failure the
            event stays pending and is retried on the next sync.
        """
        unavailable = self._unavailable()
        if unavailable:
            return unavailable

        if not event.client_id:
            event = dataclasses.replace(event, client_id=generate_client_id(event))
        if not self.pending.add(event.client_id):
            # Already in flight or waiting for retry
            return None
        self.status.notify()
        return await self._upload(event)

    async def _upload(self, event: Event) -> Optional[str]:
        error = await self._insert(event)
        if error is None:
            self.pending.remove(event.client_id)
        self.status.notify()
        return error

    def attach(self) -> None:
        """Upload every locally appended event as it is appended."""
        self.store.set_append_callback(self._on_local_append)

    def _on_local_append(self, event: Event) -> None:
        if self._unavailable():
            return
        # Pending before the upload starts, so a full pull cannot drop it
        if not self.pending.add(event.client_id):
            return
        self.status.notify()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop; %s left for the next sync", event.client_id)
            return
        task = loop.create_task(self._upload(event))
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)

    async def drain(self) -> None:
        """Wait for uploads started by appended events."""
        if self._push_tasks:
            await asyncio.gather(*list(self._push_tasks), return_exceptions=True)

    async def retry_pending_uploads(self) -> int:
        """Re-upload pending events, respecting the retry backoff.

        Pending ids whose event is no longer in the local log are dropped.

        Returns:
            Number of events confirmed by the remote.
        """
        if self.pending.count == 0:
            self.backoff.reset()
            return 0
        if self._unavailable() or not self.backoff.ready():
            return 0
        self.backoff.mark_tried()

        pushed = 0
        for client_id in self.pending.ids():
            event = self.store.find_by_client_id(client_id)
            if event is None:
                self.pending.remove(client_id)
                continue
            if await self._insert(event) is None:
                self.pending.remove(client_id)
                pushed += 1

        if pushed:
            self.backoff.reset()
            self.status.notify()
        elif self.pending.count:
            self.backoff.record_failure()
        return pushed

    # === Pull ===

    async def _pull_incremental(self) -> int:
        with self.store.reserve_merge():
            rows = await self._call(self.remote.select_events(self.user_id, self.last_confirmed_timestamp))
            if not rows:
                return 0

            existing = self.store.export_all()
            seen_ids = {e.client_id for e in existing if e.client_id}
            seen_keys = {_fallback_key(e) for e in existing}
            fresh = []
            for event in _rows_to_events(rows):
                if event.client_id in seen_ids or _fallback_key(event) in seen_keys:
                    continue
                seen_ids.add(event.client_id)
                seen_keys.add(_fallback_key(event))
                fresh.append(event)

            added = self.store.append_many(fresh, notify=False)
            # Rows arrive ordered by created_at; the tail is the newest
            self._confirm(rows[-1].get("created_at"))
            return len(added)

    async def _pull_full(self) -> int:
        with self.store.reserve_merge() as reservation:
            start = self.store.event_count()
            rows = await self._call(self.remote.select_events(self.user_id))
            server_events = _rows_to_events(rows)
            server_keys = {event_dedupe_key(e) for e in server_events}

            # Keep what the remote has not confirmed: pending uploads and
            # anything appended while the pull was in flight
            local_only = [
                event
                for position, event in enumerate(self.store.export_all())
                if event_dedupe_key(event) not in server_keys
                and (event.client_id in self.pending or position >= start)
            ]
            merged = server_events + local_only

            self.store.replace_all(merged, reservation=reservation)
            self._set_meta(CACHE_VERSION_KEY, CACHE_VERSION)
            if rows:
                self._confirm(rows[-1].get("created_at"))
            return len(merged)

    # === Sync ===

    def _fail(self, error: str, mode: str) -> SyncOutcome:
        logger.warning(f"Sync failed ({mode}): {error}")
        self.status.set_state(SyncState.ERROR)
        self._invalidate_cache()
        self.status.record_failure(error)
        return SyncOutcome(SyncState.ERROR.value, 0, error, mode)

    async def _sync_work(self, force: bool = False) -> SyncOutcome:
        try:
            if force:
                self._set_meta(LAST_SYNC_KEY, None)
                self.status.last_confirmed_timestamp = None
                self._invalidate_cache()
            self.status.set_state(SyncState.SYNCING)
            await self.retry_pending_uploads()

            cache_valid = self._cache_valid()
            mode = MODE_INCREMENTAL if cache_valid else MODE_FULL
            try:
                if cache_valid:
                    pulled = await self._pull_incremental()
                else:
                    pulled = await self._pull_full()
            except Exception as e:
                return self._fail(str(e), mode)

            self.status.set_state(SyncState.SUCCESS)
            self.status.reset_failures()
            logger.info("Sync complete (%s): %d event(s)", mode, pulled)
            return SyncOutcome(SyncState.SUCCESS.value, pulled, None, mode)
        finally:
            self._in_flight = None

    async def _wait_idle(self) -> None:
        while self._in_flight is not None:
            await asyncio.shield(self._in_flight)

    async def smart_sync(self) -> SyncOutcome:
        """Incremental sync when the local cache is valid, full otherwise."""
        unavailable = self._unavailable()
        if unavailable:
            return SyncOutcome(SyncState.ERROR.value, 0, unavailable, MODE_FULL)

        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._sync_work())
        return await asyncio.shield(self._in_flight)

    async def force_full_sync(self) -> SyncOutcome:
        """Forget the last confirmed timestamp and pull everything."""
        unavailable = self._unavailable()
        if unavailable:
            return SyncOutcome(SyncState.ERROR.value, 0, unavailable, MODE_FULL)

        await self._wait_idle()
        # Later callers join this round
        self._in_flight = asyncio.ensure_future(self._sync_work(force=True))
        return await asyncio.shield(self._in_flight)

    async def delete_all_remote(self) -> Optional[str]:
        """Delete every remote row for the user, then reset local state.

        Returns:
            None on success, otherwise the error message (local state is
            left untouched).
        """
        unavailable = self._unavailable()
        if unavailable:
            return unavailable

        await self._wait_idle()
        try:
            await self._call(self.remote.delete_events(self.user_id))
        except Exception as e:
            logger.warning(f"Remote delete failed: {e}")
            return str(e)

        self._set_meta(LAST_SYNC_KEY, None)
        self.status.last_confirmed_timestamp = None
        self._invalidate_cache()
        self.pending.clear()
        self.store.clear()
        self.status.notify()
        return None
