"""CLI command handlers."""

from .events import cmd_clear, cmd_events
from .export import cmd_export
from .import_cmd import cmd_import
from .status import cmd_status
from .sync import cmd_sync

__all__ = [
    "cmd_clear",
    "cmd_events",
    "cmd_export",
    "cmd_import",
    "cmd_status",
    "cmd_sync",
]
