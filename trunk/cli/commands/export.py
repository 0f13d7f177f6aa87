"""Export command."""

from pathlib import Path
from typing import TYPE_CHECKING

from trunk.storage.export import export_to_file

if TYPE_CHECKING:
    from trunk.storage.store import EventStore


def cmd_export(args, store: "EventStore"):
    """Write the event log to an export document."""
    path = Path(args.path)
    count = export_to_file(store, path)
    print(f"Exported {count} events to {path}")
