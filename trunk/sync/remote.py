"""Remote event table backed by Supabase.

Rows look like::

    {id, user_id, type, payload, client_id, client_timestamp, created_at}

``payload`` is the event's wire dict. ``created_at`` is assigned by the
server and is the only ordering the sync engine relies on.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from trunk.config import Settings, get_settings
from trunk.protocols import SyncError
from trunk.types import Event, event_from_dict, event_to_dict

logger = logging.getLogger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class DuplicateEventError(SyncError):
    """The remote already holds an event with this client_id."""

    pass


def local_to_row(event: Event, user_id: str) -> Dict[str, Any]:
    """Build the insert row for a local event."""
    return {
        "user_id": user_id,
        "type": event.type,
        "payload": event_to_dict(event),
        "client_id": event.client_id,
        "client_timestamp": event.timestamp,
    }


def row_to_event(row: Dict[str, Any]) -> Optional[Event]:
    """Read the event out of a remote row, or None if the payload is malformed."""
    payload = row.get("payload")
    if not isinstance(payload, dict):
        return None
    if not payload.get("client_id") and row.get("client_id"):
        payload = {**payload, "client_id": row["client_id"]}
    return event_from_dict(payload)


class SupabaseEventTable:
    """``RemoteEventTable`` over a supabase ``Client``.

    The client is synchronous; each call runs in a worker thread and is
    bounded by ``timeout`` seconds.
    """

    def __init__(self, client: Client, table: str = "events", timeout: float = 15.0):
        self._client = client
        self._table = table
        self._timeout = timeout

    async def _run(self, action: str, fn):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise SyncError(f"{action} timed out after {self._timeout}s") from e
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateEventError(e.message or "duplicate client_id") from e
            raise SyncError(f"{action} failed: {e.message}") from e
        except httpx.HTTPError as e:
            raise SyncError(f"{action} failed: {e}") from e

    async def select_events(self, user_id: str, since: Optional[str] = None) -> List[Dict[str, Any]]:
        def _query():
            query = (
                self._client.table(self._table)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=False)
            )
            if since:
                query = query.gt("created_at", since)
            return query.execute()

        result = await self._run("select events", _query)
        return list(result.data or [])

    async def insert_event(self, row: Dict[str, Any]) -> None:
        def _insert():
            return self._client.table(self._table).insert(row).execute()

        await self._run("insert event", _insert)

    async def delete_events(self, user_id: str) -> None:
        def _delete():
            return self._client.table(self._table).delete().eq("user_id", user_id).execute()

        await self._run("delete events", _delete)

    async def delete_event(self, row_id: str) -> None:
        def _delete():
            return self._client.table(self._table).delete().eq("id", row_id).execute()

        await self._run("delete event", _delete)


def create_remote_from_settings(settings: Optional[Settings] = None) -> Optional[SupabaseEventTable]:
    """Build the Supabase table from settings, or None when not configured."""
    settings = settings or get_settings()
    if not settings.remote_configured:
        return None
    client = create_client(settings.supabase_url, settings.supabase_key)
    return SupabaseEventTable(client, table=settings.events_table, timeout=settings.sync_timeout)
