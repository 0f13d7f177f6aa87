"""
Pytest fixtures and test configuration for trunk tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from trunk.storage.sqlite import SQLiteEventLog
from trunk.storage.store import EventStore
from trunk.sync.remote import DuplicateEventError, local_to_row
from trunk.types import (
    LeafCreated,
    SproutHarvested,
    SproutPlanted,
    SproutUprooted,
    SproutWatered,
    SunShone,
    format_datetime,
)

TWIG = "branch-0-twig-0"
OTHER_TWIG = "branch-1-twig-2"
USER_ID = "user-1"


class EventFactory:
    """Builds events with sensible defaults; timestamps are ISO strings."""

    def planted(
        self,
        timestamp: str,
        sprout_id: str = "sprout-1",
        twig_id: str = TWIG,
        title: str = "Run 5k",
        season: str = "2w",
        environment: str = "fertile",
        soil_cost: float = 2,
        **kwargs,
    ) -> SproutPlanted:
        return SproutPlanted(
            timestamp=timestamp,
            sprout_id=sprout_id,
            twig_id=twig_id,
            title=title,
            season=season,
            environment=environment,
            soil_cost=soil_cost,
            **kwargs,
        )

    def watered(self, timestamp: str, sprout_id: str = "sprout-1", content: str = "Ran today", **kwargs):
        return SproutWatered(timestamp=timestamp, sprout_id=sprout_id, content=content, **kwargs)

    def harvested(
        self,
        timestamp: str,
        sprout_id: str = "sprout-1",
        result: int = 4,
        capacity_gained: float = 0.25,
        **kwargs,
    ):
        return SproutHarvested(
            timestamp=timestamp,
            sprout_id=sprout_id,
            result=result,
            capacity_gained=capacity_gained,
            **kwargs,
        )

    def uprooted(self, timestamp: str, sprout_id: str = "sprout-1", soil_returned: float = 0.5, **kwargs):
        return SproutUprooted(
            timestamp=timestamp, sprout_id=sprout_id, soil_returned=soil_returned, **kwargs
        )

    def leaf(self, timestamp: str, leaf_id: str = "leaf-1", twig_id: str = TWIG, name: str = "Marathon", **kwargs):
        return LeafCreated(timestamp=timestamp, leaf_id=leaf_id, twig_id=twig_id, name=name, **kwargs)

    def shone(
        self,
        timestamp: str,
        twig_id: str = TWIG,
        twig_label: str = "movement",
        content: str = "Moving more",
        **kwargs,
    ):
        return SunShone(
            timestamp=timestamp, twig_id=twig_id, twig_label=twig_label, content=content, **kwargs
        )


class FakeRemoteTable:
    """In-memory stand-in for the Supabase events table.

    ``created_at`` is assigned from a counter so ordering is deterministic.
    Set ``fail_with`` to make every call raise, or ``reject_inserts`` to make
    only inserts raise. Set ``select_gate`` to an ``asyncio.Event`` to hold
    selects until it is set.
    """

    def __init__(self):
        self.rows: List[Dict[str, Any]] = []
        self._seq = 0
        self.fail_with: Optional[Exception] = None
        self.reject_inserts: Optional[Exception] = None
        self.select_gate: Optional[asyncio.Event] = None
        self.select_calls = 0
        self.insert_calls = 0

    def _next_created_at(self) -> str:
        self._seq += 1
        base = datetime(2025, 2, 1, tzinfo=timezone.utc)
        return format_datetime(base + timedelta(seconds=self._seq))

    def _store_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = {**row, "id": f"row-{self._seq + 1}", "created_at": self._next_created_at()}
        self.rows.append(stored)
        return stored

    def add_from_other_device(self, event, user_id: str = USER_ID) -> Dict[str, Any]:
        """Insert a row as if another client had pushed it."""
        return self._store_row(local_to_row(event, user_id))

    async def select_events(self, user_id: str, since: Optional[str] = None) -> List[Dict[str, Any]]:
        self.select_calls += 1
        if self.select_gate is not None:
            await self.select_gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        rows = [
            dict(r)
            for r in self.rows
            if r["user_id"] == user_id and (since is None or r["created_at"] > since)
        ]
        return sorted(rows, key=lambda r: r["created_at"])

    async def insert_event(self, row: Dict[str, Any]) -> None:
        self.insert_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        if self.reject_inserts is not None:
            raise self.reject_inserts
        if any(r["client_id"] == row["client_id"] for r in self.rows):
            raise DuplicateEventError("duplicate key value violates unique constraint")
        self._store_row(row)

    async def delete_events(self, user_id: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.rows = [r for r in self.rows if r["user_id"] != user_id]

    async def delete_event(self, row_id: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.rows = [r for r in self.rows if r["id"] != row_id]


@pytest.fixture
def ev():
    """Event factory."""
    return EventFactory()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "trunk.db"


@pytest.fixture
def sqlite_log(db_path):
    return SQLiteEventLog(db_path)


@pytest.fixture
def store():
    """Memory-only event store."""
    return EventStore()


@pytest.fixture
def persisted_store(sqlite_log):
    s = EventStore(sqlite_log)
    s.load()
    return s


@pytest.fixture
def fake_remote():
    return FakeRemoteTable()


@pytest.fixture
def utc():
    return timezone.utc
