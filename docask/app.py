"""Command-line entry point for docask."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import sys
from typing import List, Mapping, Optional, Sequence

import openai

from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    ConfigurationError,
    Diagnostic,
    load_configuration,
    resolve_root_dir,
)
from .index import NoFilesMatchedError
from .logging_utils import resolve_level_name, setup_logging
from .router import EXIT_FAILURES, EXIT_USAGE, CommandRouter, RemoteFactory

logger = logging.getLogger("docask")

HELP_FLAGS = {"-h", "--help"}


def _log_path_within_root(log_path: Path, root_dir: Path) -> bool:
    try:
        log_path.relative_to(root_dir)
        return True
    except ValueError:
        return False


def build_router(
    config: ConfigurationBundle,
    env: Optional[Mapping[str, str]] = None,
    remote_factory: Optional[RemoteFactory] = None,
) -> CommandRouter:
    """Register every CLI command on a fresh router."""

    router = CommandRouter(config, env=env, remote_factory=remote_factory)
    for command in COMMANDS:
        router.register(command)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print warnings and errors so operators can correct issues quickly."""

    issues = [diag for diag in config.diagnostics if diag.level != "info"]
    if not issues:
        return
    print("[config] Diagnostics:", file=sys.stderr)
    for diag in issues:
        prefix = diag.source or config.config_path or config.root_dir
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]", file=sys.stderr)


def main(
    argv: Optional[Sequence[str]] = None,
    env: Optional[Mapping[str, str]] = None,
    remote_factory: Optional[RemoteFactory] = None,
) -> int:
    """Entry point for `docask` and `python -m docask`."""

    env_source = os.environ if env is None else env
    args: List[str] = list(sys.argv[1:] if argv is None else argv)

    config_bundle = load_configuration(resolve_root_dir(env_source))
    configured_level = (config_bundle.merged.get("logging") or {}).get("level")
    log_level_name = resolve_level_name(env_source.get("DOCASK_LOG_LEVEL"), configured_level)
    if config_bundle.status == "ready":
        log_path = setup_logging(config_bundle.root_dir, log_level_name)
        config_bundle.log_path = log_path
        if not _log_path_within_root(log_path, config_bundle.root_dir):
            config_bundle.diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=(
                        "Project log directory is not writable; "
                        f"logging to fallback path '{log_path}'."
                    ),
                    source=log_path,
                )
            )
        logger.debug("Logging initialized at %s", log_path)
    emit_configuration_report(config_bundle)

    router = build_router(config_bundle, env=env_source, remote_factory=remote_factory)

    if not args or args[0] in HELP_FLAGS:
        command, command_args = "help", []
    else:
        command, command_args = args[0], args[1:]

    try:
        result = router.handle(command, command_args)
    except ConfigurationError as e:
        print(f"[config] {e}", file=sys.stderr)
        return EXIT_USAGE
    except NoFilesMatchedError as e:
        logger.error("%s", e)
        print(f"[sync] {e}", file=sys.stderr)
        return EXIT_USAGE
    except openai.OpenAIError as e:
        # Remote failures that outlasted the retry budget.
        logger.error("%s failed: %s", command, e)
        print(f"[{command}] {e}", file=sys.stderr)
        return EXIT_FAILURES

    if result.output:
        stream = sys.stderr if result.exit_code == EXIT_USAGE else sys.stdout
        print(result.output, file=stream)
    logger.debug("Command %s exited with %d", command, result.exit_code)
    return result.exit_code


__all__ = ["build_router", "emit_configuration_report", "main"]
