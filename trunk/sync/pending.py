"""client_ids of local events the remote has not confirmed yet."""

import logging
from typing import List, Optional

from trunk.protocols import StorageError
from trunk.storage.sqlite import SQLiteEventLog

logger = logging.getLogger(__name__)


class PendingUploads:
    """Ordered set of pending client_ids, mirrored to SQLite.

    Persistence failures are logged and ignored: losing the pending set only
    delays an upload until the next full sync.
    """

    def __init__(self, persistence: Optional[SQLiteEventLog] = None):
        self._persistence = persistence
        self._ids: List[str] = []

    def load(self) -> None:
        if self._persistence is None:
            return
        try:
            self._ids = list(dict.fromkeys(self._persistence.load_pending_ids()))
        except StorageError as e:
            logger.warning(f"Could not load pending uploads: {e}")
            self._ids = []

    def save(self) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence.save_pending_ids(self._ids)
        except StorageError as e:
            logger.warning(f"Could not save pending uploads: {e}")

    def add(self, client_id: str) -> bool:
        """Track ``client_id``. Returns False if it was already pending."""
        if client_id in self._ids:
            return False
        self._ids.append(client_id)
        self.save()
        return True

    def remove(self, client_id: str) -> bool:
        if client_id not in self._ids:
            return False
        self._ids.remove(client_id)
        self.save()
        return True

    def clear(self) -> None:
        self._ids = []
        self.save()

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def count(self) -> int:
        return len(self._ids)

    def ids(self) -> List[str]:
        return list(self._ids)
