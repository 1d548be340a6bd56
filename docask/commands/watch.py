"""Command that keeps the store updated while files change."""

from __future__ import annotations

from pathlib import Path
from typing import List, Union

from watchdog.observers import Observer

from ..configuration import ConfigurationError
from ..index import DocumentWatcher
from ..router import EXIT_USAGE, Command, CommandContext, CommandResult


def _resolve_watch_dir(context: CommandContext, args: List[str]) -> Path:
    root = context.config.root_dir
    if not args:
        return root
    candidate = Path(args[0]).expanduser()
    if not candidate.is_absolute():
        candidate = root / candidate
    candidate = candidate.resolve()
    if not candidate.is_dir():
        raise ConfigurationError(f"Watch directory '{args[0]}' is not a directory.")
    try:
        candidate.relative_to(root.resolve())
    except ValueError:
        raise ConfigurationError(
            f"Watch directory '{args[0]}' is outside the project root {root}."
        ) from None
    return candidate


def _handler(context: CommandContext, args: List[str]) -> Union[str, CommandResult]:
    """Watch a directory (default: project root) until interrupted."""

    if len(args) > 1:
        return CommandResult("[watch] Usage: docask watch [dir]", EXIT_USAGE)

    watch_dir = _resolve_watch_dir(context, args)
    settings = context.settings
    orchestrator = context.orchestrator()

    watcher = DocumentWatcher(
        watch_dir=watch_dir,
        matcher=orchestrator.matcher,
        process_batch=orchestrator.process_batch,
        debounce_ms=settings.debounce_ms,
        batch_max=settings.batch_max,
        observer_factory=context.metadata.get("observer_factory", Observer),
    )
    print(f"[watch] Watching {watch_dir} (Ctrl-C to stop)", flush=True)
    watcher.run_forever(stop_event=context.metadata.get("stop_event"))
    return f"[watch] Stopped watching {watch_dir}."


COMMAND = Command(
    name="watch",
    description="Watch for changes and sync them in debounced batches.",
    handler=_handler,
    usage="watch [dir]",
    requires_ready=True,
)
