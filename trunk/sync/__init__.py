"""Remote sync for the event log."""

from .engine import SyncEngine, SyncOutcome
from .pending import PendingUploads
from .remote import (
    DuplicateEventError,
    SupabaseEventTable,
    create_remote_from_settings,
    local_to_row,
    row_to_event,
)
from .retry import Backoff
from .status import DetailedSyncStatus, SyncMetadata, SyncState, SyncStatusTracker

__all__ = [
    "Backoff",
    "DetailedSyncStatus",
    "DuplicateEventError",
    "PendingUploads",
    "SupabaseEventTable",
    "SyncEngine",
    "SyncMetadata",
    "SyncOutcome",
    "SyncState",
    "SyncStatusTracker",
    "create_remote_from_settings",
    "local_to_row",
    "row_to_event",
]
