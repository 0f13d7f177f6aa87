"""Event log storage: the canonical store, its SQLite mirror, export documents."""

from .export import build_export, export_to_file, import_from_file, load_document
from .sqlite import SQLiteEventLog
from .store import EventStore

__all__ = [
    "EventStore",
    "SQLiteEventLog",
    "build_export",
    "export_to_file",
    "import_from_file",
    "load_document",
]
