"""Help command."""

from __future__ import annotations

from typing import List

from ..router import Command, CommandContext, render_help_table


def _handler(context: CommandContext, args: List[str]) -> str:
    return render_help_table(context.router.commands())


COMMAND = Command(
    name="help",
    description="List available commands.",
    handler=_handler,
    usage="help",
)
