"""Small helpers shared across trunk: data directory, ids, twig parsing."""

import hashlib
import json
import os
import re
from pathlib import Path
from typing import Optional, Tuple

from trunk.constants import BRANCH_COUNT, BRANCHES, TWIG_COUNT
from trunk.types import Event, event_to_dict

_TWIG_ID_RE = re.compile(r"^branch-(\d+)-twig-(\d+)$")


def get_trunk_home() -> Path:
    """Data directory (``$TRUNK_HOME`` or ``~/.trunk``)."""
    home = os.environ.get("TRUNK_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".trunk"


def parse_twig_id(twig_id: str) -> Optional[Tuple[int, int]]:
    """Extract (branch, twig) indices from ``branch-N-twig-M``."""
    if not isinstance(twig_id, str):
        return None
    match = _TWIG_ID_RE.match(twig_id)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def is_valid_twig_id(twig_id: str) -> bool:
    """True when the id names one of the 8x8 grid twigs."""
    parsed = parse_twig_id(twig_id)
    if parsed is None:
        return False
    branch, twig = parsed
    return 0 <= branch < BRANCH_COUNT and 0 <= twig < TWIG_COUNT


def twig_label(twig_id: str) -> str:
    """Default display label for a twig (its name in the grid)."""
    parsed = parse_twig_id(twig_id)
    if parsed is None or not is_valid_twig_id(twig_id):
        return twig_id
    branch, twig = parsed
    return BRANCHES[branch]["twigs"][twig]


def generate_client_id(event: Event) -> str:
    """Deterministic idempotency key for an event.

    Derived from the event content so that resending the same event yields
    the same key.
    """
    data = event_to_dict(event)
    data.pop("client_id", None)
    digest = hashlib.sha256(json.dumps(data, sort_keys=True).encode("utf-8")).hexdigest()
    return f"{event.timestamp}-{digest[:12]}"
