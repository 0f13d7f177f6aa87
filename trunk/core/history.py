"""Soil history derived from the event log.

``compute_soil_history`` gives capacity/available after every event that
moved soil (for charts); ``derive_soil_log`` gives a readable ledger of
gains and losses. Both fold the log once through the same handlers as
``derive_state``, so the ledger always sums to the snapshot's balance.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from trunk.constants import SOIL_STARTING_CAPACITY
from trunk.core.derive import replay_soil
from trunk.core.formulas import round_soil
from trunk.types import (
    SproutHarvested,
    SproutPlanted,
    SproutUprooted,
    SproutWatered,
    SunShone,
)


@dataclass
class SoilPoint:
    """Soil balances right after one event."""

    timestamp: str
    capacity: float
    available: float


@dataclass
class SoilLogEntry:
    """One gain (positive) or loss (negative) of available soil.

    ``capacity_change`` is non-zero only for harvests.
    """

    timestamp: str
    amount: float
    reason: str
    context: Optional[str] = None
    capacity_change: float = 0.0


def compute_soil_history(events: Iterable[Any]) -> List[SoilPoint]:
    """Capacity and available soil after each soil-changing event."""
    return [
        SoilPoint(timestamp=event.timestamp, capacity=capacity, available=available)
        for event, capacity, available, moved in replay_soil(events)
        if moved
    ]


def _reason(event: Any) -> str:
    if isinstance(event, SproutPlanted):
        return "Planted sprout"
    if isinstance(event, SproutWatered):
        return "Watered sprout"
    if isinstance(event, SproutHarvested):
        return f"Harvested ({event.result}/5)"
    if isinstance(event, SproutUprooted):
        return "Uprooted sprout"
    return "Sun reflection"


def derive_soil_log(events: Iterable[Any]) -> List[SoilLogEntry]:
    """Ledger of soil changes in replay order.

    Events the replay skips (orphans, repeats on finished sprouts, unknown
    twigs) get no entry. Amounts are the clamped change in available soil.
    """
    log: List[SoilLogEntry] = []
    titles = {}
    capacity = available = SOIL_STARTING_CAPACITY

    for event, new_capacity, new_available, moved in replay_soil(events):
        if isinstance(event, SproutPlanted) and moved:
            titles[event.sprout_id] = event.title
        if moved:
            context = event.twig_label if isinstance(event, SunShone) else titles.get(event.sprout_id)
            log.append(
                SoilLogEntry(
                    timestamp=event.timestamp,
                    amount=round_soil(new_available - available),
                    reason=_reason(event),
                    context=context,
                    capacity_change=round_soil(new_capacity - capacity),
                )
            )
        capacity, available = new_capacity, new_available

    return log
