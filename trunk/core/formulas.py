"""Pure soil calculations: planting costs, harvest rewards, refunds.

No state - just math over the shared constants.
"""

from datetime import datetime, timedelta, timezone

from trunk.constants import (
    CAPACITY_REWARD_EXPONENT,
    ENVIRONMENT_MULTIPLIERS,
    PLANTING_COSTS,
    RESULT_MULTIPLIERS,
    SEASONS,
    SOIL_MAX_CAPACITY,
    SOIL_UPROOT_REFUND_RATE,
)
from trunk.types import format_datetime, parse_datetime


def round_soil(value: float) -> float:
    """Round soil to 2 decimal places to keep float drift out of balances."""
    return round(value * 100) / 100


def calculate_soil_cost(season: str, environment: str) -> float:
    """Planting cost for a (season, environment) pair."""
    return PLANTING_COSTS[season][environment]


def calculate_capacity_reward(
    season: str,
    environment: str,
    result: int,
    current_capacity: float,
    exponent: float = CAPACITY_REWARD_EXPONENT,
) -> float:
    """Capacity gained on harvest, with diminishing returns.

    ``base * environment * result * (1 - capacity / max) ** exponent``.
    Growth slows toward zero as ``current_capacity`` approaches the maximum.
    Results outside 1-5 use the multiplier for 3.
    """
    base = SEASONS[season]["base_reward"]
    env_mult = ENVIRONMENT_MULTIPLIERS[environment]
    result_mult = RESULT_MULTIPLIERS.get(result, RESULT_MULTIPLIERS[3])

    headroom = max(0.0, 1 - current_capacity / SOIL_MAX_CAPACITY)
    return base * env_mult * result_mult * headroom**exponent


def get_capacity_reward(environment: str, season: str) -> float:
    """Base reward without result or diminishing returns."""
    return SEASONS[season]["base_reward"] * ENVIRONMENT_MULTIPLIERS[environment]


def calculate_uproot_refund(soil_cost: float) -> float:
    return round_soil(soil_cost * SOIL_UPROOT_REFUND_RATE)


def calculate_end_date(planted_at: str, season: str) -> str:
    """When a sprout planted at ``planted_at`` is due for harvest."""
    start = parse_datetime(planted_at) or datetime.now(timezone.utc)
    end = start + timedelta(milliseconds=SEASONS[season]["duration_ms"])
    return format_datetime(end)
