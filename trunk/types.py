"""
Shared types for trunk.

Events are the only persisted unit. Each variant is a frozen dataclass whose
``type`` class attribute is the wire tag. Derived types (sprouts, leaves,
sun entries, the snapshot) are recomputed from events and never stored.

On the wire events use camelCase keys (``sproutId``, ``soilCost``...) plus
``type``, ``timestamp`` and ``client_id``.
"""

import logging
import math
from dataclasses import MISSING, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Union

from trunk.constants import LEGACY_SEASON_MAP

logger = logging.getLogger(__name__)

# === Shared Utility Functions ===


def format_datetime(dt: datetime) -> str:
    """Format an aware datetime as ISO-8601 UTC with a ``Z`` designator."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> str:
    """Get current timestamp as ISO string in UTC."""
    return format_datetime(datetime.now(timezone.utc))


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string. Naive values are read as UTC."""
    if not s or not isinstance(s, str):
        return None
    try:
        dt = datetime.fromisoformat(s.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# === Enums ===


class Season(str, Enum):
    """How long a sprout grows before harvest."""

    TWO_WEEKS = "2w"
    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"
    ONE_YEAR = "1y"


class Environment(str, Enum):
    """How hard the goal is expected to be."""

    FERTILE = "fertile"
    FIRM = "firm"
    BARREN = "barren"


class SproutState(str, Enum):
    """Lifecycle state of a derived sprout."""

    ACTIVE = "active"
    COMPLETED = "completed"
    UPROOTED = "uprooted"


VALID_SEASONS = frozenset(s.value for s in Season)
VALID_ENVIRONMENTS = frozenset(e.value for e in Environment)


# === Events ===


@dataclass(frozen=True)
class SproutPlanted:
    """Sprout planted - soil spent, sprout becomes active."""

    type: ClassVar[str] = "sprout_planted"

    timestamp: str
    sprout_id: str
    twig_id: str
    title: str
    season: str
    environment: str
    soil_cost: float
    leaf_id: Optional[str] = None
    bloom_wither: Optional[str] = None
    bloom_budding: Optional[str] = None
    bloom_flourish: Optional[str] = None
    client_id: Optional[str] = None


@dataclass(frozen=True)
class SproutWatered:
    """Sprout watered - a daily check-in."""

    type: ClassVar[str] = "sprout_watered"

    timestamp: str
    sprout_id: str
    content: str
    prompt: Optional[str] = None
    client_id: Optional[str] = None


@dataclass(frozen=True)
class SproutHarvested:
    """Sprout harvested with a 1-5 result.

    ``capacity_gained`` is computed at harvest time and already includes
    diminishing returns.
    """

    type: ClassVar[str] = "sprout_harvested"

    timestamp: str
    sprout_id: str
    result: int
    capacity_gained: float
    reflection: Optional[str] = None
    client_id: Optional[str] = None


@dataclass(frozen=True)
class SproutUprooted:
    """Sprout abandoned - part of its soil is returned."""

    type: ClassVar[str] = "sprout_uprooted"

    timestamp: str
    sprout_id: str
    soil_returned: float
    client_id: Optional[str] = None


@dataclass(frozen=True)
class LeafCreated:
    """Leaf (saga) created on a twig."""

    type: ClassVar[str] = "leaf_created"

    timestamp: str
    leaf_id: str
    twig_id: str
    name: str
    client_id: Optional[str] = None


@dataclass(frozen=True)
class SunShone:
    """Weekly reflection on a twig."""

    type: ClassVar[str] = "sun_shone"

    timestamp: str
    twig_id: str
    twig_label: str
    content: str
    prompt: Optional[str] = None
    client_id: Optional[str] = None


Event = Union[SproutPlanted, SproutWatered, SproutHarvested, SproutUprooted, LeafCreated, SunShone]

EVENT_CLASSES: Dict[str, type] = {
    cls.type: cls
    for cls in (SproutPlanted, SproutWatered, SproutHarvested, SproutUprooted, LeafCreated, SunShone)
}

VALID_EVENT_TYPES = frozenset(EVENT_CLASSES)


# === Wire format ===


def _wire_key(name: str) -> str:
    """snake_case field name -> camelCase wire key (client_id is kept as is)."""
    if name == "client_id":
        return name
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _check_non_empty(value: Any) -> Any:
    if isinstance(value, str) and value.strip():
        return value
    raise ValueError("expected non-empty string")


def _check_str(value: Any) -> Any:
    if isinstance(value, str):
        return value
    raise ValueError("expected string")


def _check_amount(value: Any) -> Any:
    if _is_number(value) and value >= 0:
        return value
    raise ValueError("expected non-negative number")


def _check_result(value: Any) -> Any:
    if _is_number(value) and float(value).is_integer() and 1 <= value <= 5:
        return int(value)
    raise ValueError("expected result 1-5")


def _check_season(value: Any) -> Any:
    value = LEGACY_SEASON_MAP.get(value, value)
    if value in VALID_SEASONS:
        return value
    raise ValueError("unknown season")


def _check_environment(value: Any) -> Any:
    if value in VALID_ENVIRONMENTS:
        return value
    raise ValueError("unknown environment")


def _check_timestamp(value: Any) -> Any:
    if parse_datetime(value) is not None:
        return value
    raise ValueError("unparseable timestamp")


_FIELD_CHECKS = {
    "timestamp": _check_timestamp,
    "sprout_id": _check_non_empty,
    "leaf_id": _check_non_empty,
    "twig_id": _check_non_empty,
    "client_id": _check_non_empty,
    "season": _check_season,
    "environment": _check_environment,
    "soil_cost": _check_amount,
    "capacity_gained": _check_amount,
    "soil_returned": _check_amount,
    "result": _check_result,
}


def event_to_dict(event: Event) -> Dict[str, Any]:
    """Serialize an event to its wire dict. ``None`` optionals are omitted."""
    data: Dict[str, Any] = {"type": event.type}
    for f in fields(event):
        value = getattr(event, f.name)
        if value is None:
            continue
        data[_wire_key(f.name)] = value
    return data


def event_from_dict(data: Any) -> Optional[Event]:
    """Parse a wire dict into an event, or ``None`` if it is malformed."""
    if not isinstance(data, dict):
        return None
    cls = EVENT_CLASSES.get(data.get("type"))
    if cls is None:
        return None

    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        value = data.get(_wire_key(f.name))
        check = _FIELD_CHECKS.get(f.name, _check_str)
        optional = f.default is not MISSING
        # A blank optional id (e.g. "leafId": "") means "none"
        if optional and check is _check_non_empty and isinstance(value, str) and not value.strip():
            value = None
        if value is None:
            if not optional:
                return None
            continue
        try:
            kwargs[f.name] = check(value)
        except ValueError:
            return None
    return cls(**kwargs)


def validate_event(data: Any) -> bool:
    """Whether ``data`` is a well-formed wire event."""
    return event_from_dict(data) is not None


def parse_events(items: Iterable[Any]) -> List[Event]:
    """Parse wire dicts (or events) into events, dropping malformed entries."""
    events: List[Event] = []
    dropped = 0
    for item in items:
        if isinstance(item, tuple(EVENT_CLASSES.values())):
            events.append(item)
            continue
        event = event_from_dict(item)
        if event is None:
            dropped += 1
            continue
        events.append(event)
    if dropped:
        logger.warning("Dropped %d malformed event(s)", dropped)
    return events


def event_entity_id(event: Event) -> str:
    """The id of the entity an event is about (sprout, then leaf, then twig)."""
    for name in ("sprout_id", "leaf_id", "twig_id"):
        value = getattr(event, name, None)
        if value:
            return value
    return ""


def event_dedupe_key(event: Event) -> str:
    """Deduplication key: client_id when present, else type|entity|timestamp."""
    if event.client_id:
        return event.client_id
    return f"{event.type}|{event_entity_id(event)}|{event.timestamp}"


# === Derived Types ===


@dataclass
class WaterEntry:
    """A check-in recorded against a sprout."""

    timestamp: str
    content: str
    prompt: Optional[str] = None


@dataclass
class SunEntry:
    """A reflection, with the twig it was about."""

    timestamp: str
    content: str
    twig_id: str
    twig_label: str
    prompt: Optional[str] = None


@dataclass
class DerivedSprout:
    """Sprout state computed from events."""

    id: str
    twig_id: str
    title: str
    season: str
    environment: str
    soil_cost: float
    planted_at: str
    state: str = SproutState.ACTIVE.value
    leaf_id: Optional[str] = None
    bloom_wither: Optional[str] = None
    bloom_budding: Optional[str] = None
    bloom_flourish: Optional[str] = None
    harvested_at: Optional[str] = None
    result: Optional[int] = None
    reflection: Optional[str] = None
    uprooted_at: Optional[str] = None
    water_entries: List[WaterEntry] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.state == SproutState.ACTIVE.value


@dataclass
class DerivedLeaf:
    """Leaf state computed from events."""

    id: str
    twig_id: str
    name: str
    created_at: str


@dataclass
class Snapshot:
    """Full state derived from an event log.

    The four index maps are projections of ``sprouts`` and ``leaves``; they
    are rebuilt with them and never changed on their own.
    """

    soil_capacity: float
    soil_available: float
    sprouts: Dict[str, DerivedSprout] = field(default_factory=dict)
    leaves: Dict[str, DerivedLeaf] = field(default_factory=dict)
    sun_entries: List[SunEntry] = field(default_factory=list)
    active_sprouts_by_twig: Dict[str, List[DerivedSprout]] = field(default_factory=dict)
    sprouts_by_twig: Dict[str, List[DerivedSprout]] = field(default_factory=dict)
    sprouts_by_leaf: Dict[str, List[DerivedSprout]] = field(default_factory=dict)
    leaves_by_twig: Dict[str, List[DerivedLeaf]] = field(default_factory=dict)
