"""Command registry, dispatcher and shared rendering helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from io import StringIO
import os
import shutil
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from rich.console import Console
from rich.table import Table

from .configuration import (
    ConfigurationBundle,
    DocaskSettings,
    resolve_api_key,
)
from .index import (
    PathMatcher,
    RemoteIndexClient,
    RetryExecutor,
    StateStore,
    SyncOrchestrator,
)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_USAGE = 2


@dataclass
class CommandResult:
    output: str
    exit_code: int = EXIT_OK


CommandHandler = Callable[["CommandContext", List[str]], Union[str, CommandResult]]
RemoteFactory = Callable[[str], RemoteIndexClient]


@dataclass
class CommandContext:
    """Context passed into each command handler.

    Collaborators are built on first use so commands like ``help`` never need
    credentials.
    """

    config: ConfigurationBundle
    router: "CommandRouter"
    env: Mapping[str, str]
    remote_factory: RemoteFactory
    metadata: Dict[str, Any] = field(default_factory=dict)
    _remote: Optional[RemoteIndexClient] = None
    _state: Optional[StateStore] = None

    @property
    def settings(self) -> DocaskSettings:
        return DocaskSettings.from_config(self.config.merged, env=self.env)

    def remote(self) -> RemoteIndexClient:
        if self._remote is None:
            self._remote = self.remote_factory(resolve_api_key(self.env))
        return self._remote

    def state(self) -> StateStore:
        if self._state is None:
            self._state = StateStore.load(self.config.state_path)
        return self._state

    def retry_executor(self) -> RetryExecutor:
        return RetryExecutor(self.settings.retry)

    def matcher(self) -> PathMatcher:
        return PathMatcher(self.config.root_dir, self.settings.globs)

    def orchestrator(self) -> SyncOrchestrator:
        settings = self.settings
        store_id = settings.require_store_id()
        return SyncOrchestrator(
            root=self.config.root_dir,
            state=self.state(),
            remote=self.remote(),
            retry=self.retry_executor(),
            vector_store_id=store_id,
            globs=settings.globs,
            batch_max=settings.batch_max,
            matcher=self.matcher(),
        )


@dataclass
class Command:
    """Metadata about a CLI command."""

    name: str
    description: str
    handler: CommandHandler
    usage: str = ""
    requires_ready: bool = False


class CommandRouter:
    """Registry + dispatcher for CLI commands."""

    def __init__(
        self,
        config: ConfigurationBundle,
        env: Optional[Mapping[str, str]] = None,
        remote_factory: Optional[RemoteFactory] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self.env = os.environ if env is None else env
        self.remote_factory = remote_factory or RemoteIndexClient.from_api_key
        self.metadata = metadata or {}
        self._commands: Dict[str, Command] = {}

    def register(self, command: Command) -> None:
        self._commands[command.name.lower()] = command

    def handle(self, command_name: str, args: List[str]) -> CommandResult:
        command = self._commands.get(command_name.lower())
        if command is None:
            return CommandResult(
                f"[docask] Unknown command '{command_name}'. Run `docask help` for usage.",
                EXIT_USAGE,
            )
        if command.requires_ready and self.config.status != "ready":
            return CommandResult(
                f"[docask] '{command_name}' requires a valid configuration "
                f"(current status: {self.config.status}).",
                EXIT_USAGE,
            )
        context = CommandContext(
            config=self.config,
            router=self,
            env=self.env,
            remote_factory=self.remote_factory,
            metadata=self.metadata,
        )
        result = command.handler(context, args)
        if isinstance(result, CommandResult):
            return result
        return CommandResult(result)

    @property
    def command_names(self) -> Sequence[str]:
        return sorted(self._commands.keys())

    def commands(self) -> Sequence[Command]:
        return [self._commands[name] for name in self.command_names]

    def get(self, command_name: str) -> Optional[Command]:
        return self._commands.get(command_name.lower())


def render_help_table(commands: Sequence[Command]) -> str:
    """Render a help table listing commands."""

    def _render(console: Console) -> None:
        table = Table(title="docask commands", show_header=True, header_style="bold cyan")
        table.add_column("Command", style="green", no_wrap=True)
        table.add_column("Description")
        for cmd in commands:
            table.add_row(cmd.usage or cmd.name, cmd.description)
        console.print(table)

    return render_rich(_render)


def render_rich(render_fn: Callable[[Console], None]) -> str:
    """Render a Rich layout to an ANSI string without printing live."""

    terminal_size = shutil.get_terminal_size(fallback=(80, 24))
    # Clamp to a reasonable minimum so Rich does not choke on ultra-small widths.
    width = max(40, terminal_size.columns)
    height = max(10, terminal_size.lines)

    console = Console(
        record=True,
        force_terminal=True,
        color_system="auto",
        width=width,
        height=height,
        file=StringIO(),
    )
    render_fn(console)
    return console.export_text(clear=False, styles=True)


__all__ = [
    "Command",
    "CommandContext",
    "CommandResult",
    "CommandRouter",
    "EXIT_FAILURES",
    "EXIT_OK",
    "EXIT_USAGE",
    "render_help_table",
    "render_rich",
]
