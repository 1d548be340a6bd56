"""Command that mirrors the matched documentation files into the store."""

from __future__ import annotations

from typing import List

from rich.console import Console
from rich.table import Table

from ..index import SyncReport
from ..router import (
    EXIT_FAILURES,
    EXIT_OK,
    EXIT_USAGE,
    Command,
    CommandContext,
    CommandResult,
    render_rich,
)

PRUNE_FLAGS = {"--prune", "-p"}


def _handler(context: CommandContext, args: List[str]) -> CommandResult:
    """Upload changed files; with --prune also drop files no longer matched."""

    unknown = [arg for arg in args if arg not in PRUNE_FLAGS]
    if unknown:
        return CommandResult(f"[sync] Unknown argument(s): {' '.join(unknown)}", EXIT_USAGE)

    orchestrator = context.orchestrator()
    report = orchestrator.sync_all(prune=any(arg in PRUNE_FLAGS for arg in args))
    return CommandResult(
        _render_report(report),
        EXIT_FAILURES if report.errored else EXIT_OK,
    )


def _render_report(report: SyncReport) -> str:
    def _render(console: Console) -> None:
        table = Table(title="Sync Summary", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("Updated", str(report.updated))
        table.add_row("Skipped", str(report.skipped))
        table.add_row("Errored", str(report.errored))
        if report.removed or report.missing:
            table.add_row("Removed", str(report.removed))
            table.add_row("Missing", str(report.missing))
        patterns = report.pattern_set or "configured"
        if patterns == "fallback":
            patterns = "[yellow]fallback (configured includes matched nothing)[/yellow]"
        table.add_row("Patterns", patterns)
        table.add_row("Elapsed", f"{report.elapsed_seconds:.2f}s")
        console.print(table)

        errored = [d["path"] for d in report.details if d["action"] == "errored"]
        if errored:
            console.print("[red]Errored:[/red]")
            for path in errored[:10]:
                console.print(f"  ! {path}")
            if len(errored) > 10:
                console.print(f"  ... and {len(errored) - 10} more")

    return render_rich(_render)


COMMAND = Command(
    name="sync",
    description="Upload new and changed files. --prune removes files that no longer match.",
    handler=_handler,
    usage="sync [--prune]",
    requires_ready=True,
)
