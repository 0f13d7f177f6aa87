"""Status command: resources and sprout counts."""

from typing import TYPE_CHECKING, Any, Dict

from trunk.core.clock import next_day_reset, next_week_reset
from trunk.types import SproutState, format_datetime

from .helpers import print_json

if TYPE_CHECKING:
    from trunk.storage.store import EventStore


def _status_summary(store: "EventStore") -> Dict[str, Any]:
    state = store.get_state()
    by_state = {s.value: 0 for s in SproutState}
    for sprout in state.sprouts.values():
        by_state[sprout.state] = by_state.get(sprout.state, 0) + 1

    return {
        "soil": {"available": state.soil_available, "capacity": state.soil_capacity},
        "water": {
            "available": store.get_water_available(),
            "capacity": store.water_capacity,
            "resets_at": format_datetime(next_day_reset()),
        },
        "sun": {
            "available": store.get_sun_available(),
            "capacity": store.sun_capacity,
            "resets_at": format_datetime(next_week_reset()),
        },
        "sprouts": by_state,
        "leaves": len(state.leaves),
        "events": store.event_count(),
    }


def cmd_status(args, store: "EventStore"):
    """Show soil, water, sun and sprout counts."""
    summary = _status_summary(store)
    if args.json:
        print_json(summary)
        return

    soil = summary["soil"]
    water = summary["water"]
    sun = summary["sun"]
    sprouts = summary["sprouts"]
    print(f"Soil:    {soil['available']:.2f} / {soil['capacity']:.2f}")
    print(f"Water:   {water['available']} / {water['capacity']}  (resets {water['resets_at']})")
    print(f"Sun:     {sun['available']} / {sun['capacity']}  (resets {sun['resets_at']})")
    print(
        f"Sprouts: {sprouts['active']} active, {sprouts['completed']} harvested, "
        f"{sprouts['uprooted']} uprooted"
    )
    print(f"Leaves:  {summary['leaves']}")
    print(f"Events:  {summary['events']}")
