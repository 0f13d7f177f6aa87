"""
Event store - owns the event log and its derived snapshot.

- The in-memory list is the source of truth; SQLite is a mirror
- Events are append-only; nothing here reorders or edits them
- The snapshot is derived lazily and cached until the log changes
- Persistence failures never escape: they are reported through callbacks
  and the in-memory log stays updated
- After a failed write the mirror is stale; the next write rewrites it whole
"""

import contextlib
import dataclasses
import logging
from datetime import datetime, tzinfo
from typing import Any, Callable, Iterable, List, Optional

from trunk.constants import SUN_WEEKLY_CAPACITY, WATER_DAILY_CAPACITY
from trunk.core.derive import (
    derive_state,
    derive_sun_available,
    derive_water_available,
    was_sprout_watered_this_week,
    was_sprout_watered_today,
)
from trunk.protocols import MergeInProgressError, StorageError, StorageFullError
from trunk.types import EVENT_CLASSES, Event, Snapshot, event_from_dict, parse_events
from trunk.utils import generate_client_id

from .sqlite import SQLiteEventLog

logger = logging.getLogger(__name__)


class EventStore:
    """The canonical event log.

    Args:
        persistence: Optional SQLite mirror. Without one the store is
            memory-only.
        on_quota_error: Called (no arguments) when storage is full.
        on_save_error: Called with the exception on other storage failures.
    """

    def __init__(
        self,
        persistence: Optional[SQLiteEventLog] = None,
        on_quota_error: Optional[Callable[[], None]] = None,
        on_save_error: Optional[Callable[[Exception], None]] = None,
    ):
        self._persistence = persistence
        self._on_quota_error = on_quota_error
        self._on_save_error = on_save_error
        self._on_append: Optional[Callable[[Event], None]] = None

        self._events: List[Event] = []
        self._client_ids: set = set()

        # Snapshot cache: explicit dirty flag, recomputed on next read
        self._cached_state: Optional[Snapshot] = None
        self._dirty = True

        self._merge_token: Optional[object] = None
        self._mirror_stale = False

    # === Setup ===

    def load(self) -> int:
        """Load the persisted log, keeping only valid events.

        Returns:
            Number of events loaded.
        """
        raw: List[Any] = []
        if self._persistence is not None:
            try:
                raw = self._persistence.load_events()
            except StorageError as e:
                logger.warning(f"Could not load events, starting empty: {e}")
        self._install(parse_events(raw))
        return len(self._events)

    def set_error_callbacks(
        self,
        on_quota_error: Optional[Callable[[], None]],
        on_save_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._on_quota_error = on_quota_error
        self._on_save_error = on_save_error

    def set_append_callback(self, callback: Optional[Callable[[Event], None]]) -> None:
        """Register a hook called after each locally appended event (used by sync)."""
        self._on_append = callback

    # === Internals ===

    def _invalidate(self) -> None:
        self._cached_state = None
        self._dirty = True

    def _install(self, events: List[Event]) -> None:
        self._events = list(events)
        self._client_ids = {e.client_id for e in self._events if e.client_id}
        self._invalidate()

    def _persist(self, write: Callable[[SQLiteEventLog], None]) -> bool:
        if self._persistence is None:
            return True
        try:
            write(self._persistence)
            self._mirror_stale = False
            return True
        except StorageFullError as e:
            logger.warning(f"Event log not saved, storage full: {e}")
            if self._on_quota_error is not None:
                self._on_quota_error()
        except StorageError as e:
            logger.warning(f"Event log not saved: {e}")
            if self._on_save_error is not None:
                self._on_save_error(e)
        self._mirror_stale = True
        return False

    @staticmethod
    def _coerce(event: Any) -> Optional[Event]:
        if isinstance(event, tuple(EVENT_CLASSES.values())):
            parsed = event
        else:
            parsed = event_from_dict(event)
            if parsed is None:
                return None
        if not parsed.client_id:
            parsed = dataclasses.replace(parsed, client_id=generate_client_id(parsed))
        return parsed

    # === Writes ===

    def append(self, event: Any) -> bool:
        """Append one event to the tail of the log.

        Assigns a ``client_id`` when the event has none. An event whose
        ``client_id`` is already in the log is not appended again.

        Returns:
            True if the event was appended.
        """
        return bool(self.append_many([event]))

    def append_many(self, events: Iterable[Any], notify: bool = True) -> List[Event]:
        """Append several events with a single persistence write.

        Args:
            events: Events (or wire dicts) to append. Malformed entries
                and already-present client_ids are skipped.
            notify: Call the append hook for each appended event. The sync
                engine passes False when merging events it pulled.

        Returns:
            The events actually appended, in order.
        """
        added: List[Event] = []
        for item in events:
            event = self._coerce(item)
            if event is None:
                logger.warning("Ignoring malformed event on append")
                continue
            if event.client_id in self._client_ids:
                logger.debug("Ignoring duplicate event %s", event.client_id)
                continue
            self._client_ids.add(event.client_id)
            self._events.append(event)
            added.append(event)

        if not added:
            return added

        self._invalidate()
        if self._mirror_stale:
            snapshot = list(self._events)
            self._persist(lambda p: p.save_events(snapshot))
        else:
            self._persist(lambda p: p.append_events(added))

        if notify and self._on_append is not None:
            for event in added:
                self._on_append(event)
        return added

    def _check_reservation(self, reservation: Optional[object]) -> None:
        if self._merge_token is not None and reservation is not self._merge_token:
            raise MergeInProgressError("A sync merge is in progress; try again when it completes")

    def replace_all(self, events: Iterable[Any], reservation: Optional[object] = None) -> None:
        """Discard the log and install ``events`` in its place.

        Invalid entries are dropped. An empty input leaves a valid empty
        store. Used by full sync and by explicit import only.

        Raises:
            MergeInProgressError: A sync merge holds the reservation and the
                caller did not present it.
        """
        self._check_reservation(reservation)
        new_events = []
        seen = set()
        for item in events:
            event = self._coerce(item)
            if event is None or event.client_id in seen:
                continue
            seen.add(event.client_id)
            new_events.append(event)

        self._install(new_events)
        self._persist(lambda p: p.save_events(new_events))

    def clear(self, reservation: Optional[object] = None) -> None:
        """Empty the log and remove persisted events."""
        self._check_reservation(reservation)
        self._install([])
        self._persist(lambda p: p.clear_events())

    @contextlib.contextmanager
    def reserve_merge(self):
        """Hold the merge reservation for the duration of a sync merge.

        While held, ``replace_all``/``clear`` calls that do not present the
        yielded token are rejected. Appends are always allowed.
        """
        if self._merge_token is not None:
            raise MergeInProgressError("A sync merge is already in progress")
        token = object()
        self._merge_token = token
        try:
            yield token
        finally:
            self._merge_token = None

    @property
    def merge_in_progress(self) -> bool:
        return self._merge_token is not None

    # === Reads ===

    def export_all(self) -> List[Event]:
        """The full log, in append order. The returned list is a copy."""
        return list(self._events)

    def event_count(self) -> int:
        return len(self._events)

    def has_client_id(self, client_id: str) -> bool:
        return client_id in self._client_ids

    def find_by_client_id(self, client_id: str) -> Optional[Event]:
        if client_id not in self._client_ids:
            return None
        for event in self._events:
            if event.client_id == client_id:
                return event
        return None

    def get_state(self) -> Snapshot:
        """Derived snapshot, recomputed on first read after a change."""
        if self._dirty or self._cached_state is None:
            self._cached_state = derive_state(self._events)
            self._dirty = False
        return self._cached_state

    def get_water_available(self, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> int:
        return derive_water_available(self._events, now, tz)

    def get_sun_available(self, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> int:
        return derive_sun_available(self._events, now, tz)

    def check_sprout_watered_today(
        self, sprout_id: str, now: Optional[datetime] = None, tz: Optional[tzinfo] = None
    ) -> bool:
        return was_sprout_watered_today(self._events, sprout_id, now, tz)

    def check_sprout_watered_this_week(
        self, sprout_id: str, now: Optional[datetime] = None, tz: Optional[tzinfo] = None
    ) -> bool:
        return was_sprout_watered_this_week(self._events, sprout_id, now, tz)

    # === Resource getters ===

    @property
    def soil_available(self) -> float:
        return self.get_state().soil_available

    @property
    def soil_capacity(self) -> float:
        return self.get_state().soil_capacity

    @property
    def water_capacity(self) -> int:
        return WATER_DAILY_CAPACITY

    @property
    def sun_capacity(self) -> int:
        return SUN_WEEKLY_CAPACITY

    def can_afford_soil(self, cost: float) -> bool:
        return self.get_state().soil_available >= cost

    def can_afford_water(self, cost: int = 1, now: Optional[datetime] = None) -> bool:
        return self.get_water_available(now) >= cost

    def can_afford_sun(self, cost: int = 1, now: Optional[datetime] = None) -> bool:
        return self.get_sun_available(now) >= cost
