"""Import command.

Accepts current export documents and legacy tree exports (versions 1-3 or
unversioned), which are migrated to events on the way in.
"""

from pathlib import Path
from typing import TYPE_CHECKING

from trunk.storage.export import import_from_file

if TYPE_CHECKING:
    from trunk.storage.store import EventStore


def cmd_import(args, store: "EventStore"):
    """Replace the event log with the contents of an export document."""
    path = Path(args.path)
    if not path.exists():
        print(f"File not found: {path}")
        return
    if store.event_count() and not args.yes:
        print(f"Local log has {store.event_count()} events; pass --yes to replace them.")
        return
    count = import_from_file(store, path)
    print(f"Imported {count} events from {path}")
