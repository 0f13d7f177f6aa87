"""Shared helper functions for CLI commands."""

import json
from typing import Any


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, default=str))
