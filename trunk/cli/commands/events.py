"""Event log commands: list and clear."""

from typing import TYPE_CHECKING

from trunk.types import event_entity_id, event_to_dict

from .helpers import print_json

if TYPE_CHECKING:
    from trunk.storage.store import EventStore


def cmd_events(args, store: "EventStore"):
    """List the most recent events in log order."""
    events = store.export_all()
    if args.limit and args.limit > 0:
        events = events[-args.limit :]

    if args.json:
        print_json([event_to_dict(e) for e in events])
        return

    if not events:
        print("No events.")
        return
    for event in events:
        print(f"{event.timestamp}  {event.type:<17} {event_entity_id(event)}")


def cmd_clear(args, store: "EventStore"):
    """Delete the local event log."""
    if not args.yes:
        print("Refusing to clear without --yes.")
        return
    count = store.event_count()
    store.clear()
    print(f"Cleared {count} events.")
