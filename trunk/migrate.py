"""Legacy tree-state migration.

Before the event log, trunk stored a mapping of node id to node data
(label, note, sprouts, leaves) plus a separate sun log. This module brings
those documents forward:

- ``run_schema_migrations`` upgrades the stored shape to the last tree schema
- ``migrate_to_events`` turns the upgraded tree into an event log
- ``validate_migration`` checks that nothing was lost on the way
- ``rebuild_nodes`` goes back from events to the tree shape
"""

import copy
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from trunk.constants import LEGACY_SEASON_MAP, SOIL_MAX_CAPACITY, SOIL_STARTING_CAPACITY
from trunk.core.derive import derive_state, sort_events
from trunk.core.formulas import (
    calculate_capacity_reward,
    calculate_soil_cost,
    calculate_uproot_refund,
)
from trunk.types import Event, SproutHarvested, SproutPlanted, parse_events
from trunk.utils import generate_client_id, twig_label

logger = logging.getLogger(__name__)

TREE_SCHEMA_VERSION = 2
UNNAMED_LEAF = "Unnamed Saga"

# Legacy sprout states that were actually planted
_PLANTED_STATES = {"active", "completed", "failed", "uprooted"}
_HARVESTED_STATES = {"completed", "failed"}


# === Schema migrations ===


def _migrate_1_to_2(data: Dict[str, Any]) -> Dict[str, Any]:
    """Retire 1w seasons, name unnamed leaves, drop leaf status."""
    for node in data.get("nodes", {}).values():
        if not isinstance(node, dict):
            continue
        sprouts = [s for s in node.get("sprouts") or [] if isinstance(s, dict)]

        for sprout in sprouts:
            sprout["season"] = LEGACY_SEASON_MAP.get(sprout.get("season"), sprout.get("season"))

        for leaf in node.get("leaves") or []:
            if not isinstance(leaf, dict):
                continue
            if not leaf.get("name"):
                # Newest sprout on the leaf names it
                on_leaf = [s for s in sprouts if s.get("leafId") == leaf.get("id")]
                on_leaf.sort(key=lambda s: s.get("createdAt") or "", reverse=True)
                leaf["name"] = (on_leaf[0].get("title") if on_leaf else None) or UNNAMED_LEAF
            leaf.pop("status", None)
    return data


_MIGRATIONS = {
    2: _migrate_1_to_2,
}


def run_schema_migrations(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade a stored tree document to the current tree schema.

    A document without ``_version`` is treated as version 0: a bare mapping
    of node id to node data. It is normalized to ``{"_version": 1, "nodes": ...}``
    first. The input is not modified.

    Returns:
        ``{"_version": 2, "nodes": {...}}``
    """
    data = copy.deepcopy(raw)
    version = data.get("_version")
    if not isinstance(version, int) or isinstance(version, bool):
        version = 0

    if version == 0:
        nodes = {k: v for k, v in data.items() if k != "_version" and isinstance(v, dict)}
        data = {"_version": 1, "nodes": nodes}
        version = 1

    if not isinstance(data.get("nodes"), dict):
        data["nodes"] = {}

    while version < TREE_SCHEMA_VERSION:
        migration = _MIGRATIONS.get(version + 1)
        if migration is not None:
            logger.debug("Running tree schema migration %d -> %d", version, version + 1)
            data = migration(data)
        version += 1

    return {"_version": TREE_SCHEMA_VERSION, "nodes": data["nodes"]}


# === Tree -> events ===


def _sprout_events(twig_id: str, sprout: Dict[str, Any]) -> List[Dict[str, Any]]:
    state = sprout.get("state")
    if state not in _PLANTED_STATES:
        return []

    planted_at = sprout.get("plantedAt") or sprout.get("activatedAt") or sprout.get("createdAt")
    season = LEGACY_SEASON_MAP.get(sprout.get("season"), sprout.get("season"))
    environment = sprout.get("environment")
    soil_cost = sprout.get("soilCost")
    if soil_cost is None:
        try:
            soil_cost = calculate_soil_cost(season, environment)
        except KeyError:
            logger.warning("Skipping legacy sprout %s: unknown season/environment", sprout.get("id"))
            return []

    events = [
        {
            "type": "sprout_planted",
            "timestamp": planted_at,
            "sproutId": sprout.get("id"),
            "twigId": twig_id,
            "title": sprout.get("title"),
            "season": season,
            "environment": environment,
            "soilCost": soil_cost,
            "leafId": sprout.get("leafId"),
            "bloomWither": sprout.get("bloomWither"),
            "bloomBudding": sprout.get("bloomBudding"),
            "bloomFlourish": sprout.get("bloomFlourish"),
        }
    ]

    for entry in sprout.get("waterEntries") or []:
        if not isinstance(entry, dict):
            continue
        events.append(
            {
                "type": "sprout_watered",
                "timestamp": entry.get("timestamp"),
                "sproutId": sprout.get("id"),
                "content": entry.get("content", ""),
                "prompt": entry.get("prompt"),
            }
        )

    if state in _HARVESTED_STATES and sprout.get("result"):
        events.append(
            {
                "type": "sprout_harvested",
                "timestamp": sprout.get("harvestedAt") or sprout.get("completedAt") or planted_at,
                "sproutId": sprout.get("id"),
                "result": sprout.get("result"),
                "reflection": sprout.get("reflection"),
                "capacityGained": 0,  # filled in by the chronological pass
            }
        )
    elif state == "uprooted":
        refund = sprout.get("soilReturned")
        if refund is None:
            refund = calculate_uproot_refund(soil_cost)
        events.append(
            {
                "type": "sprout_uprooted",
                "timestamp": sprout.get("uprootedAt") or sprout.get("completedAt") or planted_at,
                "sproutId": sprout.get("id"),
                "soilReturned": refund,
            }
        )
    return events


def _sun_event(entry: Dict[str, Any]) -> Dict[str, Any]:
    context = entry.get("context") or {}
    twig_id = context.get("twigId")
    return {
        "type": "sun_shone",
        "timestamp": entry.get("timestamp"),
        "twigId": twig_id,
        "twigLabel": context.get("twigLabel") or twig_label(twig_id),
        "content": entry.get("content", ""),
        "prompt": entry.get("prompt"),
    }


def migrate_to_events(
    nodes: Dict[str, Any], sun_log: Optional[List[Dict[str, Any]]] = None
) -> List[Event]:
    """Convert a (schema-migrated) legacy tree into a sorted event log.

    Harvest rewards are recomputed by replaying the log chronologically,
    since the reward at each harvest depends on the capacity at that moment.
    Each event gets a deterministic ``client_id``, so migrating the same
    tree twice yields the same log.
    """
    raw: List[Dict[str, Any]] = []
    for node_id, data in (nodes or {}).items():
        if "twig" not in node_id or not isinstance(data, dict):
            continue

        for leaf in data.get("leaves") or []:
            if not isinstance(leaf, dict):
                continue
            raw.append(
                {
                    "type": "leaf_created",
                    "timestamp": leaf.get("createdAt"),
                    "leafId": leaf.get("id"),
                    "twigId": node_id,
                    "name": leaf.get("name") or UNNAMED_LEAF,
                }
            )

        for sprout in data.get("sprouts") or []:
            if isinstance(sprout, dict):
                raw.extend(_sprout_events(node_id, sprout))

    for entry in sun_log or []:
        if isinstance(entry, dict):
            raw.append(_sun_event(entry))

    events = [event for _, event in sort_events(parse_events(raw))]

    # Replay capacity to price each harvest at the capacity it happened at
    capacity = SOIL_STARTING_CAPACITY
    planted: Dict[str, SproutPlanted] = {}
    migrated: List[Event] = []
    for event in events:
        if isinstance(event, SproutPlanted):
            planted[event.sprout_id] = event
        elif isinstance(event, SproutHarvested) and event.sprout_id in planted:
            sprout = planted[event.sprout_id]
            gained = calculate_capacity_reward(sprout.season, sprout.environment, event.result, capacity)
            event = dataclasses.replace(event, capacity_gained=gained)
            capacity = min(capacity + gained, SOIL_MAX_CAPACITY)
        migrated.append(dataclasses.replace(event, client_id=generate_client_id(event)))

    logger.info("Migrated legacy tree to %d events", len(migrated))
    return migrated


# === Validation ===


@dataclass
class MigrationReport:
    """Outcome of comparing a legacy tree with its migrated events."""

    valid: bool
    errors: List[str] = field(default_factory=list)


def validate_migration(nodes: Dict[str, Any], events: List[Event]) -> MigrationReport:
    """Compare event counts with what the legacy tree says should exist."""
    expected = {"sprout_planted": 0, "sprout_watered": 0, "sprout_harvested": 0, "leaf_created": 0}
    for node_id, data in (nodes or {}).items():
        if "twig" not in node_id or not isinstance(data, dict):
            continue
        expected["leaf_created"] += len(data.get("leaves") or [])
        for sprout in data.get("sprouts") or []:
            if not isinstance(sprout, dict) or sprout.get("state") not in _PLANTED_STATES:
                continue
            expected["sprout_planted"] += 1
            expected["sprout_watered"] += len(sprout.get("waterEntries") or [])
            if sprout.get("state") in _HARVESTED_STATES and sprout.get("result"):
                expected["sprout_harvested"] += 1

    errors = []
    for event_type, count in expected.items():
        actual = sum(1 for e in events if e.type == event_type)
        if actual != count:
            errors.append(f"{event_type}: expected {count}, got {actual}")
    return MigrationReport(valid=not errors, errors=errors)


# === Events -> tree ===


def _sprout_node(sprout) -> Dict[str, Any]:
    node = {
        "id": sprout.id,
        "title": sprout.title,
        "season": sprout.season,
        "environment": sprout.environment,
        "state": sprout.state,
        "soilCost": sprout.soil_cost,
        "createdAt": sprout.planted_at,
        "plantedAt": sprout.planted_at,
        "result": sprout.result,
        "reflection": sprout.reflection,
        "harvestedAt": sprout.harvested_at,
        "uprootedAt": sprout.uprooted_at,
        "bloomWither": sprout.bloom_wither,
        "bloomBudding": sprout.bloom_budding,
        "bloomFlourish": sprout.bloom_flourish,
        "leafId": sprout.leaf_id,
        "waterEntries": [dataclasses.asdict(w) for w in sprout.water_entries],
    }
    return {k: v for k, v in node.items() if v is not None}


def rebuild_nodes(events: List[Any], circles: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Regroup derived state into the legacy tree shape.

    Labels and notes are not event-sourced; they come from ``circles``.

    Returns:
        ``{"nodes": {twig_id: node}, "sunLog": [...]}``
    """
    circles = circles or {}
    state = derive_state(events)

    nodes: Dict[str, Dict[str, Any]] = {}

    def node_for(twig_id: str) -> Dict[str, Any]:
        if twig_id not in nodes:
            circle = circles.get(twig_id) or {}
            nodes[twig_id] = {"label": circle.get("label", ""), "note": circle.get("note", "")}
        return nodes[twig_id]

    for sprout in state.sprouts.values():
        node_for(sprout.twig_id).setdefault("sprouts", []).append(_sprout_node(sprout))
    for leaf in state.leaves.values():
        node_for(leaf.twig_id).setdefault("leaves", []).append(
            {"id": leaf.id, "name": leaf.name, "createdAt": leaf.created_at}
        )

    for node_id, circle in circles.items():
        if node_id not in nodes and isinstance(circle, dict) and (circle.get("label") or circle.get("note")):
            node_for(node_id)

    sun_log = [
        {
            "timestamp": entry.timestamp,
            "content": entry.content,
            "prompt": entry.prompt,
            "context": {"twigId": entry.twig_id, "twigLabel": entry.twig_label},
        }
        for entry in state.sun_entries
    ]
    return {"nodes": nodes, "sunLog": sun_log}
