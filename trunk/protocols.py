"""
Trunk interface contracts
=========================

Errors shared across the package and the contract for the remote event
table the sync engine talks to.

The remote table stores one row per event:

    id, user_id, type, payload, client_id, client_timestamp, created_at

The sync engine needs only ordered selection with an optional lower bound,
insertion, and deletion. Anything that satisfies ``RemoteEventTable`` can
stand in for the Supabase adapter (tests use an in-memory table).
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

# =============================================================================
# ERRORS
# =============================================================================


class TrunkError(Exception):
    """Base for all trunk errors."""

    pass


class StorageError(TrunkError):
    """Raised by persistence on storage failures."""

    pass


class StorageFullError(StorageError):
    """Raised when the storage medium has no room left."""

    pass


class SyncError(TrunkError):
    """Raised by remote adapters when a round trip fails."""

    pass


class MergeInProgressError(TrunkError):
    """Raised when a full replace is attempted while a sync merge is outstanding."""

    pass


class ImportFormatError(TrunkError):
    """Raised when an import document has an unrecognised shape or version."""

    pass


# =============================================================================
# REMOTE
# =============================================================================


@runtime_checkable
class RemoteEventTable(Protocol):
    """Remote store of event rows."""

    async def select_events(self, user_id: str, since: Optional[str] = None) -> List[Dict[str, Any]]:
        """Rows for ``user_id`` ordered by ``created_at`` ascending.

        When ``since`` is given only rows with ``created_at`` strictly
        greater than it are returned.
        """
        ...

    async def insert_event(self, row: Dict[str, Any]) -> None:
        """Insert one row. Raises ``DuplicateEventError`` if the client_id exists."""
        ...

    async def delete_events(self, user_id: str) -> None:
        """Delete every row belonging to ``user_id``."""
        ...

    async def delete_event(self, row_id: str) -> None:
        """Delete a single row by id."""
        ...
