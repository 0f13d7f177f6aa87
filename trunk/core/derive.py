"""
State derivation from the event log.

All state is computed by replaying events; the log itself is never
modified. ``derive_state`` is pure: the same events always give an equal
snapshot, and nothing is kept between calls.

Replay rules:
- events are sorted by timestamp (stable, so ties keep log order)
- repeated events (same dedupe key) are replayed once
- events about sprouts or leaves that do not exist are skipped
- events on twigs outside the 8x8 grid are skipped
- available soil always stays within [0, capacity]
"""

import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from trunk.constants import (
    SOIL_MAX_CAPACITY,
    SOIL_STARTING_CAPACITY,
    SOIL_SUN_RECOVERY,
    SOIL_WATER_RECOVERY,
    SUN_WEEKLY_CAPACITY,
    WATER_DAILY_CAPACITY,
)
from trunk.core.clock import day_window_start, week_window_start
from trunk.core.formulas import round_soil
from trunk.types import (
    DerivedLeaf,
    DerivedSprout,
    Event,
    LeafCreated,
    Snapshot,
    SproutHarvested,
    SproutPlanted,
    SproutState,
    SproutUprooted,
    SproutWatered,
    SunEntry,
    SunShone,
    WaterEntry,
    event_dedupe_key,
    parse_datetime,
    parse_events,
)
from trunk.utils import is_valid_twig_id, parse_twig_id

logger = logging.getLogger(__name__)


def sort_events(events: Iterable[Any]) -> List[Tuple[datetime, Event]]:
    """Parse and sort events by timestamp, ascending.

    Returns (instant, event) pairs. Entries that are not valid events or
    whose timestamp does not parse are dropped. The sort is stable.
    """
    keyed = []
    for event in parse_events(events):
        instant = parse_datetime(event.timestamp)
        if instant is None:
            continue
        keyed.append((instant, event))
    keyed.sort(key=lambda pair: pair[0])
    return keyed


def dedupe_events(keyed: Iterable[Tuple[datetime, Event]]) -> List[Tuple[datetime, Event]]:
    """Keep the first occurrence of each dedupe key."""
    seen = set()
    unique = []
    for instant, event in keyed:
        key = event_dedupe_key(event)
        if key in seen:
            continue
        seen.add(key)
        unique.append((instant, event))
    return unique


class _Replay:
    """Working state for one derivation. Created per call, never shared."""

    def __init__(self):
        self.capacity = SOIL_STARTING_CAPACITY
        self.available = SOIL_STARTING_CAPACITY
        self.sprouts: Dict[str, DerivedSprout] = {}
        self.leaves: Dict[str, DerivedLeaf] = {}
        self.sun_entries: List[SunEntry] = []

    def gain(self, amount: float) -> None:
        self.available = round_soil(min(self.available + amount, self.capacity))

    def spend(self, amount: float) -> None:
        self.available = round_soil(max(0.0, self.available - amount))


def _apply_planted(replay: _Replay, event: SproutPlanted) -> bool:
    if not is_valid_twig_id(event.twig_id):
        logger.debug("Skipping sprout_planted on unknown twig %s", event.twig_id)
        return False
    previous = replay.sprouts.get(event.sprout_id)
    if previous is not None and previous.is_active:
        # Re-plant overwrites; release what the old record still held
        replay.gain(previous.soil_cost)
    replay.spend(event.soil_cost)
    replay.sprouts[event.sprout_id] = DerivedSprout(
        id=event.sprout_id,
        twig_id=event.twig_id,
        title=event.title,
        season=event.season,
        environment=event.environment,
        soil_cost=event.soil_cost,
        planted_at=event.timestamp,
        leaf_id=event.leaf_id,
        bloom_wither=event.bloom_wither,
        bloom_budding=event.bloom_budding,
        bloom_flourish=event.bloom_flourish,
    )
    return True


def _apply_watered(replay: _Replay, event: SproutWatered) -> bool:
    sprout = replay.sprouts.get(event.sprout_id)
    if sprout is None:
        logger.debug("Skipping sprout_watered: sprout %s not found", event.sprout_id)
        return False
    sprout.water_entries.append(
        WaterEntry(timestamp=event.timestamp, content=event.content, prompt=event.prompt)
    )
    if not sprout.is_active:
        return False
    replay.gain(SOIL_WATER_RECOVERY)
    return True


def _apply_harvested(replay: _Replay, event: SproutHarvested) -> bool:
    sprout = replay.sprouts.get(event.sprout_id)
    if sprout is None or not sprout.is_active:
        logger.debug("Skipping sprout_harvested: sprout %s not active", event.sprout_id)
        return False
    sprout.state = SproutState.COMPLETED.value
    sprout.result = event.result
    sprout.reflection = event.reflection
    sprout.harvested_at = event.timestamp
    replay.capacity = min(replay.capacity + event.capacity_gained, SOIL_MAX_CAPACITY)
    replay.gain(sprout.soil_cost)
    return True


def _apply_uprooted(replay: _Replay, event: SproutUprooted) -> bool:
    sprout = replay.sprouts.get(event.sprout_id)
    if sprout is None or not sprout.is_active:
        logger.debug("Skipping sprout_uprooted: sprout %s not active", event.sprout_id)
        return False
    sprout.state = SproutState.UPROOTED.value
    sprout.uprooted_at = event.timestamp
    replay.gain(event.soil_returned)
    return True


def _apply_leaf_created(replay: _Replay, event: LeafCreated) -> bool:
    if not is_valid_twig_id(event.twig_id):
        logger.debug("Skipping leaf_created on unknown twig %s", event.twig_id)
        return False
    if event.leaf_id not in replay.leaves:
        replay.leaves[event.leaf_id] = DerivedLeaf(
            id=event.leaf_id,
            twig_id=event.twig_id,
            name=event.name,
            created_at=event.timestamp,
        )
    return False


def _apply_sun_shone(replay: _Replay, event: SunShone) -> bool:
    if not is_valid_twig_id(event.twig_id):
        logger.debug("Skipping sun_shone on unknown twig %s", event.twig_id)
        return False
    replay.sun_entries.append(
        SunEntry(
            timestamp=event.timestamp,
            content=event.content,
            prompt=event.prompt,
            twig_id=event.twig_id,
            twig_label=event.twig_label,
        )
    )
    replay.gain(SOIL_SUN_RECOVERY)
    return True


# Each handler returns True when the event moved soil balances
_HANDLERS: Dict[str, Callable[[_Replay, Any], bool]] = {
    SproutPlanted.type: _apply_planted,
    SproutWatered.type: _apply_watered,
    SproutHarvested.type: _apply_harvested,
    SproutUprooted.type: _apply_uprooted,
    LeafCreated.type: _apply_leaf_created,
    SunShone.type: _apply_sun_shone,
}


def _build_indexes(replay: _Replay) -> Snapshot:
    sprouts_by_twig: Dict[str, List[DerivedSprout]] = {}
    active_sprouts_by_twig: Dict[str, List[DerivedSprout]] = {}
    sprouts_by_leaf: Dict[str, List[DerivedSprout]] = {}
    leaves_by_twig: Dict[str, List[DerivedLeaf]] = {}

    for sprout in replay.sprouts.values():
        sprouts_by_twig.setdefault(sprout.twig_id, []).append(sprout)
        if sprout.is_active:
            active_sprouts_by_twig.setdefault(sprout.twig_id, []).append(sprout)
        if sprout.leaf_id:
            sprouts_by_leaf.setdefault(sprout.leaf_id, []).append(sprout)

    for leaf in replay.leaves.values():
        leaves_by_twig.setdefault(leaf.twig_id, []).append(leaf)

    return Snapshot(
        soil_capacity=replay.capacity,
        soil_available=replay.available,
        sprouts=replay.sprouts,
        leaves=replay.leaves,
        sun_entries=replay.sun_entries,
        active_sprouts_by_twig=active_sprouts_by_twig,
        sprouts_by_twig=sprouts_by_twig,
        sprouts_by_leaf=sprouts_by_leaf,
        leaves_by_twig=leaves_by_twig,
    )


def _fold(
    replay: _Replay, events: Iterable[Any], now: Optional[datetime] = None
) -> Iterator[Tuple[Event, bool]]:
    if now is not None and now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    for instant, event in dedupe_events(sort_events(events)):
        if now is not None and instant > now:
            continue
        handler = _HANDLERS.get(event.type)
        if handler is None:
            logger.debug("Skipping unknown event type %s", event.type)
            continue
        yield event, handler(replay, event)


def derive_state(events: Iterable[Any], now: Optional[datetime] = None) -> Snapshot:
    """Derive the full snapshot from an event log.

    Args:
        events: Events in any order, possibly with duplicates or malformed
            entries (which are dropped).
        now: If given, only events at or before this instant are replayed.

    Returns:
        A fresh Snapshot.
    """
    replay = _Replay()
    for _ in _fold(replay, events, now):
        pass
    return _build_indexes(replay)


def replay_soil(events: Iterable[Any]) -> Iterator[Tuple[Event, float, float, bool]]:
    """Replay the log one event at a time, as ``derive_state`` does.

    Yields ``(event, capacity, available, moved)`` after each handled
    event, where ``moved`` tells whether the event changed soil.
    """
    replay = _Replay()
    for event, moved in _fold(replay, events):
        yield event, replay.capacity, replay.available, moved


# === Water / Sun availability ===


def _count_since(
    events: Iterable[Any],
    event_type: str,
    since: datetime,
    predicate: Optional[Callable[[Event], bool]] = None,
) -> int:
    count = 0
    for instant, event in dedupe_events(sort_events(events)):
        if event.type != event_type or instant < since:
            continue
        if predicate is not None and not predicate(event):
            continue
        count += 1
    return count


def derive_water_available(
    events: Iterable[Any], now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> int:
    """Water left today: daily capacity minus waterings since the 06:00 reset."""
    used = _count_since(events, SproutWatered.type, day_window_start(now, tz))
    return max(0, WATER_DAILY_CAPACITY - used)


def derive_sun_available(
    events: Iterable[Any], now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> int:
    """Sun left this week: weekly capacity minus shines since Monday 06:00."""
    used = _count_since(
        events,
        SunShone.type,
        week_window_start(now, tz),
        lambda e: is_valid_twig_id(e.twig_id),
    )
    return max(0, SUN_WEEKLY_CAPACITY - used)


def was_sprout_watered_today(
    events: Iterable[Any], sprout_id: str, now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> bool:
    since = day_window_start(now, tz)
    return _count_since(events, SproutWatered.type, since, lambda e: e.sprout_id == sprout_id) > 0


def was_sprout_watered_this_week(
    events: Iterable[Any], sprout_id: str, now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> bool:
    since = week_window_start(now, tz)
    return _count_since(events, SproutWatered.type, since, lambda e: e.sprout_id == sprout_id) > 0


def was_shone_this_week(
    events: Iterable[Any], now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> bool:
    return derive_sun_available(events, now, tz) < SUN_WEEKLY_CAPACITY


# === Queries ===


def get_sprouts_for_twig(state: Snapshot, twig_id: str) -> List[DerivedSprout]:
    return state.sprouts_by_twig.get(twig_id, [])


def get_leaves_for_twig(state: Snapshot, twig_id: str) -> List[DerivedLeaf]:
    return state.leaves_by_twig.get(twig_id, [])


def get_active_sprouts(state: Snapshot) -> List[DerivedSprout]:
    return [s for sprouts in state.active_sprouts_by_twig.values() for s in sprouts]


def get_completed_sprouts(state: Snapshot) -> List[DerivedSprout]:
    return [s for s in state.sprouts.values() if s.state == SproutState.COMPLETED.value]


def get_leaf(state: Snapshot, leaf_id: str) -> Optional[DerivedLeaf]:
    return state.leaves.get(leaf_id)


def get_sprouts_for_leaf(state: Snapshot, leaf_id: str) -> List[DerivedSprout]:
    return state.sprouts_by_leaf.get(leaf_id, [])


def get_all_water_entries(state: Snapshot) -> List[Dict[str, Any]]:
    """Every water entry with its sprout context, newest first."""
    entries = []
    for sprout in state.sprouts.values():
        for entry in sprout.water_entries:
            entries.append(
                {
                    "timestamp": entry.timestamp,
                    "content": entry.content,
                    "prompt": entry.prompt,
                    "sprout_id": sprout.id,
                    "sprout_title": sprout.title,
                    "twig_id": sprout.twig_id,
                }
            )
    entries.sort(key=lambda e: parse_datetime(e["timestamp"]), reverse=True)
    return entries


def count_sprouts_by_branch(state: Snapshot) -> Dict[int, Dict[str, int]]:
    """Active and total sprout counts per branch index."""
    counts: Dict[int, Dict[str, int]] = {}
    for twig_id, sprouts in state.sprouts_by_twig.items():
        parsed = parse_twig_id(twig_id)
        if parsed is None:
            continue
        branch = counts.setdefault(parsed[0], {"active": 0, "total": 0})
        branch["total"] += len(sprouts)
        branch["active"] += sum(1 for s in sprouts if s.is_active)
    return counts
