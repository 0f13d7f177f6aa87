"""
Trunk - event-sourced goal tracking.

Sprouts, leaves and reflections are recorded as an append-only event log;
everything visible is derived from it.
"""

from .core.derive import derive_state
from .storage.store import EventStore
from .sync.engine import SyncEngine

try:
    from importlib.metadata import version

    __version__ = version("trunk")
except Exception:
    __version__ = "0.0.0"

__all__ = ["EventStore", "SyncEngine", "derive_state"]
