"""Logging helpers for the docask CLI."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
import tempfile
from typing import Optional, Union

LOG_SUBPATH = Path(".docask") / "logs" / "docask.log"
STRUCTURED_LOG_SUBPATH = Path(".docask") / "logs" / "docask.jsonl"
MAX_BYTES = 5 * 1024 * 1024  # 5 MB per log segment
BACKUP_COUNT = 3
FALLBACK_ROOT = Path(tempfile.gettempdir()) / "docask"

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra") and record.extra:
            log_entry["extra"] = record.extra
        return json.dumps(log_entry)


def setup_logging(
    root_dir: Path,
    level: Union[str, int] = logging.INFO,
    structured: bool = True,
    console: bool = True,
) -> Path:
    """Configure docask logging.

    Args:
        root_dir: Project root; logs go under ``.docask/logs``.
        level: Logging level (string name or int constant).
        structured: Whether to also write JSON lines.
        console: Whether to echo records to stderr.

    Returns:
        Path to the primary (text) log file.
    """
    log_path = _resolve_path(root_dir, LOG_SUBPATH)
    resolved_level = _resolve_level(level)
    text_formatter = logging.Formatter(CONSOLE_FORMAT)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(text_formatter)

    logger = logging.getLogger("docask")
    _reset_handlers(logger)
    logger.setLevel(resolved_level)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(text_formatter)
        logger.addHandler(console_handler)

    if structured:
        json_handler = RotatingFileHandler(
            _resolve_path(root_dir, STRUCTURED_LOG_SUBPATH),
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        json_handler.setFormatter(JSONFormatter())
        logger.addHandler(json_handler)

    logger.propagate = False

    _silence_third_party()
    return log_path


def resolve_level_name(
    env_level: Optional[str],
    configured_level: Optional[str],
    default: str = "INFO",
) -> str:
    return (env_level or configured_level or default).upper()


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def _resolve_path(root_dir: Path, subpath: Path) -> Path:
    primary = root_dir / subpath
    try:
        primary.parent.mkdir(parents=True, exist_ok=True)
        return primary
    except PermissionError:
        fallback = FALLBACK_ROOT / subpath
        fallback.parent.mkdir(parents=True, exist_ok=True)
        print(
            f"[config] Unable to write logs under '{root_dir}'; "
            f"falling back to '{fallback.parent}'.",
            file=sys.stderr,
        )
        return fallback


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _silence_third_party() -> None:
    # The HTTP stack logs every request at INFO.
    for name in ("httpx", "httpcore", "openai", "watchdog"):
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = [
    "FALLBACK_ROOT",
    "JSONFormatter",
    "LOG_SUBPATH",
    "STRUCTURED_LOG_SUBPATH",
    "resolve_level_name",
    "setup_logging",
]
