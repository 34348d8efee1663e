"""CLI command modules for scansync."""

from scansync.cli_commands.codes import delete, list_codes, remote, resync, run, scan, sync
from scansync.cli_commands.config import config_app
from scansync.cli_commands.status import status_command

__all__ = [
    "config_app",
    "delete",
    "list_codes",
    "remote",
    "resync",
    "run",
    "scan",
    "status_command",
    "sync",
]
