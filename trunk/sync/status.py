"""Sync status tracking and change notification."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from trunk.types import utc_now

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """State of the sync loop itself."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class DetailedSyncStatus(str, Enum):
    """What a UI shows."""

    SYNCED = "synced"
    SYNCING = "syncing"
    OFFLINE = "offline"
    PENDING_UPLOAD = "pendingUpload"
    LOADING = "loading"


@dataclass
class SyncMetadata:
    """Point-in-time view handed to listeners."""

    status: DetailedSyncStatus
    last_confirmed_timestamp: Optional[str]
    pending_count: int
    last_error: Optional[str]
    consecutive_failures: int
    last_failure_at: Optional[str]


Listener = Callable[[SyncMetadata], None]


class SyncStatusTracker:
    """Owns the sync state, failure bookkeeping and listeners.

    Args:
        pending_count: Returns the current number of pending uploads.
    """

    def __init__(self, pending_count: Callable[[], int] = lambda: 0):
        self._pending_count = pending_count
        self.state = SyncState.IDLE
        self.last_error: Optional[str] = None
        self.consecutive_failures = 0
        self.last_failure_at: Optional[str] = None
        self.last_confirmed_timestamp: Optional[str] = None
        self._listeners: List[Listener] = []

    def detailed_status(self) -> DetailedSyncStatus:
        if self.state == SyncState.SYNCING:
            return DetailedSyncStatus.SYNCING
        if self.state == SyncState.ERROR:
            return DetailedSyncStatus.OFFLINE
        if self._pending_count() > 0:
            return DetailedSyncStatus.PENDING_UPLOAD
        if self.state in (SyncState.SUCCESS, SyncState.IDLE):
            return DetailedSyncStatus.SYNCED
        return DetailedSyncStatus.LOADING

    def metadata(self) -> SyncMetadata:
        return SyncMetadata(
            status=self.detailed_status(),
            last_confirmed_timestamp=self.last_confirmed_timestamp,
            pending_count=self._pending_count(),
            last_error=self.last_error,
            consecutive_failures=self.consecutive_failures,
            last_failure_at=self.last_failure_at,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and call it once with the current metadata.

        Returns:
            An unsubscribe function. Calling it more than once is harmless.
        """
        self._listeners.append(listener)
        self._deliver(listener, self.metadata())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _deliver(self, listener: Listener, meta: SyncMetadata) -> None:
        try:
            listener(meta)
        except Exception as e:
            logger.warning(f"Sync status listener failed: {e}")

    def notify(self) -> None:
        meta = self.metadata()
        for listener in list(self._listeners):
            self._deliver(listener, meta)

    def set_state(self, state: SyncState) -> None:
        self.state = state
        self.notify()

    def record_failure(self, error: str) -> None:
        self.last_error = error
        self.consecutive_failures += 1
        self.last_failure_at = utc_now()
        self.notify()

    def reset_failures(self) -> None:
        """Clear failure bookkeeping; listeners hear about it only if there was any."""
        if self.consecutive_failures == 0:
            return
        self.last_error = None
        self.consecutive_failures = 0
        self.last_failure_at = None
        self.notify()
