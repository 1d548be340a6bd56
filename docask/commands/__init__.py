"""CLI command registry."""

from __future__ import annotations

from .ask import COMMAND as ASK_COMMAND
from .help import COMMAND as HELP_COMMAND
from .init import COMMAND as INIT_COMMAND
from .status import COMMAND as STATUS_COMMAND
from .sync import COMMAND as SYNC_COMMAND
from .watch import COMMAND as WATCH_COMMAND

COMMANDS = [
    INIT_COMMAND,
    SYNC_COMMAND,
    WATCH_COMMAND,
    ASK_COMMAND,
    STATUS_COMMAND,
    HELP_COMMAND,
]

__all__ = ["COMMANDS"]
