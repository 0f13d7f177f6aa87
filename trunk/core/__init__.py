"""Pure computation over the event log: windows, formulas, derivation."""

from .clock import day_window_start, next_day_reset, next_week_reset, week_window_start
from .derive import (
    derive_state,
    derive_sun_available,
    derive_water_available,
    was_shone_this_week,
    was_sprout_watered_this_week,
    was_sprout_watered_today,
)
from .formulas import (
    calculate_capacity_reward,
    calculate_end_date,
    calculate_soil_cost,
    calculate_uproot_refund,
    get_capacity_reward,
    round_soil,
)
from .history import SoilLogEntry, SoilPoint, compute_soil_history, derive_soil_log

__all__ = [
    "SoilLogEntry",
    "SoilPoint",
    "calculate_capacity_reward",
    "calculate_end_date",
    "calculate_soil_cost",
    "calculate_uproot_refund",
    "compute_soil_history",
    "day_window_start",
    "derive_soil_log",
    "derive_state",
    "derive_sun_available",
    "derive_water_available",
    "get_capacity_reward",
    "next_day_reset",
    "next_week_reset",
    "round_soil",
    "was_shone_this_week",
    "was_sprout_watered_this_week",
    "was_sprout_watered_today",
]
