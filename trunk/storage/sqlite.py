"""SQLite persistence for trunk.

Mirrors the in-memory event log and keeps the sync bookkeeping (pending
uploads, sync metadata). Connections are opened per operation; every
write runs in one transaction.
"""

import contextlib
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from trunk.protocols import StorageError, StorageFullError
from trunk.types import Event, event_to_dict, utc_now
from trunk.utils import get_trunk_home

from .schema import init_db

logger = logging.getLogger(__name__)


def _is_full_error(error: sqlite3.Error) -> bool:
    code = getattr(error, "sqlite_errorcode", None)
    if code is not None:
        return code == sqlite3.SQLITE_FULL
    return "full" in str(error).lower()


class SQLiteEventLog:
    """Persisted mirror of the event log.

    Args:
        db_path: Database file. Defaults to ``<trunk home>/trunk.db``.

    All methods raise ``StorageError`` (``StorageFullError`` when the disk
    is full) instead of leaking ``sqlite3`` exceptions.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else get_trunk_home() / "trunk.db"
        with self._guard("initialize database"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                init_db(conn, self.db_path)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that handles transactions AND closes connection."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextlib.contextmanager
    def _guard(self, action: str):
        """Translate sqlite/OS failures into StorageError."""
        try:
            yield
        except sqlite3.Error as e:
            if _is_full_error(e):
                raise StorageFullError(f"Storage full: could not {action}") from e
            raise StorageError(f"Could not {action}: {e}") from e
        except OSError as e:
            raise StorageError(f"Could not {action}: {e}") from e

    # === Events ===

    @staticmethod
    def _event_row(event: Event) -> tuple:
        return (
            event.client_id,
            event.type,
            event.timestamp,
            json.dumps(event_to_dict(event)),
        )

    def load_events(self) -> List[Dict[str, Any]]:
        """Stored events as wire dicts, in log order. Unreadable rows are skipped."""
        with self._guard("load events"):
            with self._connect() as conn:
                rows = conn.execute("SELECT seq, payload FROM events ORDER BY seq").fetchall()

        events = []
        for row in rows:
            try:
                events.append(json.loads(row["payload"]))
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable event row %s", row["seq"])
        return events

    def append_events(self, events: Iterable[Event]) -> None:
        rows = [self._event_row(e) for e in events]
        if not rows:
            return
        with self._guard("append events"):
            with self._connect() as conn:
                conn.executemany(
                    "INSERT INTO events (client_id, type, timestamp, payload) VALUES (?, ?, ?, ?)",
                    rows,
                )

    def save_events(self, events: Iterable[Event]) -> None:
        """Rewrite the whole log in one transaction."""
        rows = [self._event_row(e) for e in events]
        with self._guard("save events"):
            with self._connect() as conn:
                conn.execute("DELETE FROM events")
                conn.executemany(
                    "INSERT INTO events (client_id, type, timestamp, payload) VALUES (?, ?, ?, ?)",
                    rows,
                )

    def clear_events(self) -> None:
        with self._guard("clear events"):
            with self._connect() as conn:
                conn.execute("DELETE FROM events")

    # === Pending uploads ===

    def load_pending_ids(self) -> List[str]:
        with self._guard("load pending uploads"):
            with self._connect() as conn:
                rows = conn.execute("SELECT client_id FROM pending_uploads ORDER BY rowid").fetchall()
        return [row["client_id"] for row in rows]

    def save_pending_ids(self, client_ids: Iterable[str]) -> None:
        with self._guard("save pending uploads"):
            with self._connect() as conn:
                conn.execute("DELETE FROM pending_uploads")
                conn.executemany(
                    "INSERT OR IGNORE INTO pending_uploads (client_id) VALUES (?)",
                    [(cid,) for cid in client_ids],
                )

    # === Sync metadata ===

    def get_meta(self, key: str) -> Optional[str]:
        with self._guard("read sync metadata"):
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM sync_meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self._guard("write sync metadata"):
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, utc_now()),
                )

    def delete_meta(self, key: str) -> None:
        with self._guard("delete sync metadata"):
            with self._connect() as conn:
                conn.execute("DELETE FROM sync_meta WHERE key = ?", (key,))
