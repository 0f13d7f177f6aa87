"""Export and import documents.

The current format is::

    {"_version": 4, "_exportedAt": "...", "events": [...]}

Older exports (versions 1-3, or no version at all) carried the tree state
instead of events. Those are migrated on import.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from trunk.constants import EXPORT_VERSION, LEGACY_VERSIONS
from trunk.migrate import migrate_to_events, run_schema_migrations
from trunk.protocols import ImportFormatError
from trunk.types import Event, event_to_dict, parse_events, utc_now

if TYPE_CHECKING:
    from .store import EventStore

logger = logging.getLogger(__name__)


def build_export(events: Iterable[Event], exported_at: Optional[str] = None) -> Dict[str, Any]:
    """Build an export document for ``events`` (in log order)."""
    return {
        "_version": EXPORT_VERSION,
        "_exportedAt": exported_at or utc_now(),
        "events": [event_to_dict(e) for e in events],
    }


def _document_version(data: Dict[str, Any]) -> Optional[int]:
    version = data.get("_version", data.get("version"))
    if isinstance(version, bool) or not isinstance(version, int):
        return None
    return version


def load_document(data: Any) -> List[Event]:
    """Read the events out of an export document.

    Raises:
        ImportFormatError: Not an object, an unknown version, or a legacy
            document without tree data.
    """
    if not isinstance(data, dict):
        raise ImportFormatError("Import document must be a JSON object")

    version = _document_version(data)

    if version == EXPORT_VERSION:
        raw_events = data.get("events")
        if not isinstance(raw_events, list):
            raise ImportFormatError("Version 4 document has no events list")
        return parse_events(raw_events)

    if not version or version in LEGACY_VERSIONS:
        nodes = data.get("circles", data.get("nodes"))
        if not isinstance(nodes, dict):
            raise ImportFormatError("Legacy document has no tree data")
        logger.info("Migrating legacy document (version %s)", version or 0)
        migrated = run_schema_migrations({"_version": version, "nodes": nodes} if version else nodes)
        sun_log = data.get("sunLog")
        return migrate_to_events(migrated["nodes"], sun_log if isinstance(sun_log, list) else [])

    raise ImportFormatError(f"Unsupported export version: {version}")


def export_to_file(store: "EventStore", path: Path) -> int:
    """Write the store's log to ``path``.

    Returns:
        Number of events exported.
    """
    events = store.export_all()
    document = build_export(events)
    Path(path).write_text(json.dumps(document, indent=2), encoding="utf-8")
    logger.info("Exported %d events to %s", len(events), path)
    return len(events)


def import_from_file(store: "EventStore", path: Path) -> int:
    """Replace the store's log with the events in the document at ``path``.

    Raises:
        ImportFormatError: The file is not JSON or not a known document.

    Returns:
        Number of events imported.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ImportFormatError(f"Import file is not valid JSON: {e}") from e

    events = load_document(data)
    store.replace_all(events)
    logger.info("Imported %d events from %s", len(events), path)
    return len(events)
