"""Shared constants for soil, water, sun and the tree layout.

Values match the shared constants the web and iOS clients are generated
from, so a log derived here produces the same balances everywhere.
"""

# === Soil ===

SOIL_STARTING_CAPACITY = 10.0
SOIL_MAX_CAPACITY = 120.0

# Recovery applied to available soil per action
SOIL_WATER_RECOVERY = 0.05
SOIL_SUN_RECOVERY = 0.35

# Fraction of the planting cost returned when a sprout is uprooted
SOIL_UPROOT_REFUND_RATE = 0.25

PLANTING_COSTS = {
    "2w": {"fertile": 2, "firm": 3, "barren": 4},
    "1m": {"fertile": 3, "firm": 5, "barren": 6},
    "3m": {"fertile": 5, "firm": 8, "barren": 10},
    "6m": {"fertile": 8, "firm": 12, "barren": 16},
    "1y": {"fertile": 12, "firm": 18, "barren": 24},
}

ENVIRONMENT_MULTIPLIERS = {
    "fertile": 1.1,
    "firm": 1.75,
    "barren": 2.4,
}

RESULT_MULTIPLIERS = {
    1: 0.4,
    2: 0.55,
    3: 0.7,
    4: 0.85,
    5: 1.0,
}

# Exponent of the diminishing-returns curve applied to capacity rewards
CAPACITY_REWARD_EXPONENT = 1.5

# === Water / Sun ===

WATER_DAILY_CAPACITY = 3
SUN_WEEKLY_CAPACITY = 1
RESET_HOUR = 6

# === Seasons ===

_DAY_MS = 86_400_000

SEASONS = {
    "2w": {"label": "2 weeks", "duration_ms": 14 * _DAY_MS, "base_reward": 0.26},
    "1m": {"label": "1 month", "duration_ms": 30 * _DAY_MS, "base_reward": 0.56},
    "3m": {"label": "3 months", "duration_ms": 90 * _DAY_MS, "base_reward": 1.95},
    "6m": {"label": "6 months", "duration_ms": 180 * _DAY_MS, "base_reward": 4.16},
    "1y": {"label": "1 year", "duration_ms": 365 * _DAY_MS, "base_reward": 8.84},
}

# Seasons that existed in older data and what they became
LEGACY_SEASON_MAP = {"1w": "2w"}

# === Tree structure ===

BRANCH_COUNT = 8
TWIG_COUNT = 8

BRANCHES = [
    {
        "name": "CORE",
        "description": "fitness & vitality",
        "twigs": ["movement", "strength", "sport", "technique",
                  "maintenance", "nutrition", "sleep", "appearance"],
    },
    {
        "name": "BRAIN",
        "description": "knowledge & curiosity",
        "twigs": ["reading", "writing", "reasoning", "focus",
                  "memory", "analysis", "dialogue", "exploration"],
    },
    {
        "name": "VOICE",
        "description": "expression & creativity",
        "twigs": ["practice", "composition", "interpretation", "performance",
                  "consumption", "curation", "completion", "publication"],
    },
    {
        "name": "HANDS",
        "description": "making & craft",
        "twigs": ["design", "fabrication", "assembly", "repair",
                  "refinement", "tooling", "tending", "preparation"],
    },
    {
        "name": "HEART",
        "description": "love & family",
        "twigs": ["homemaking", "care", "presence", "intimacy",
                  "communication", "ritual", "adventure", "joy"],
    },
    {
        "name": "BREATH",
        "description": "regulation & renewal",
        "twigs": ["observation", "nature", "flow", "repose",
                  "idleness", "exposure", "abstinence", "reflection"],
    },
    {
        "name": "BACK",
        "description": "belonging & community",
        "twigs": ["connection", "support", "gathering", "membership",
                  "stewardship", "advocacy", "service", "culture"],
    },
    {
        "name": "FEET",
        "description": "stability & direction",
        "twigs": ["work", "development", "positioning", "ventures",
                  "finance", "operations", "planning", "administration"],
    },
]

# === Export format ===

EXPORT_VERSION = 4
LEGACY_VERSIONS = frozenset({1, 2, 3})
