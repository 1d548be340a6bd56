"""Command that shows what docask is pointed at."""

from __future__ import annotations

from typing import List

from rich.console import Console
from rich.table import Table

from ..configuration import STORE_ID_ENV
from ..router import Command, CommandContext, render_rich


def _handler(context: CommandContext, args: List[str]) -> str:
    """Show configuration and index status."""

    config = context.config
    settings = context.settings
    if context.env.get(STORE_ID_ENV):
        store_source = "env"
    elif settings.vector_store_id:
        store_source = "config"
    else:
        store_source = ""

    def _render(console: Console) -> None:
        table = Table(title="docask Status", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("Root", str(config.root_dir))
        table.add_row("Config", f"{config.config_path} ({'loaded' if config.file_loaded else 'defaults'})")
        table.add_row("Status", config.status)
        if settings.vector_store_id:
            table.add_row("Vector Store", f"{settings.vector_store_id} ({store_source})")
        else:
            table.add_row("Vector Store", "(not configured; run `docask init`)")
        table.add_row("Assistant", settings.assistant_id or "(created on first ask)")
        table.add_row("Includes", ", ".join(settings.globs.includes) or "(none)")
        table.add_row("Excludes", ", ".join(settings.globs.excludes) or "(none)")
        table.add_row("Debounce", f"{settings.debounce_ms} ms")
        table.add_row("Batch Max", str(settings.batch_max))
        table.add_row("State File", str(config.state_path))
        table.add_row("Tracked Files", str(len(context.state())))

        for diag in config.diagnostics:
            if diag.level != "info":
                table.add_row(diag.level.capitalize(), diag.message)

        console.print(table)

    return render_rich(_render)


COMMAND = Command(
    name="status",
    description="Show configuration, vector store and tracked file count.",
    handler=_handler,
    usage="status",
)
