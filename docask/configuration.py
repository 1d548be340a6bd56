"""Project-aware configuration loading for docask."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
import logging
import math
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional, Tuple

import yaml

from .index.matcher import GlobConfig
from .index.retry import RetryConfig

logger = logging.getLogger("docask.configuration")

CONFIG_FILENAME = ".docask.yml"
STATE_FILENAME = ".docask_state.json"

API_KEY_ENV_VARS: Tuple[str, ...] = ("DOCASK_API_KEY", "OPENAI_API_KEY")
STORE_ID_ENV = "DOCASK_VECTOR_STORE_ID"
NAME_ENV = "DOCASK_NAME"
EXPIRES_ENV = "DOCASK_EXPIRES_HOURS"
ROOT_ENV = "DOCASK_ROOT"

DiagnosticLevel = Literal["info", "warning", "error"]
ConfigurationStatus = Literal["ready", "missing", "invalid"]

SchemaSpec = Dict[str, Any]

DEFAULT_INCLUDES: List[str] = ["docs/**/*.{md,mdx,markdown}", "README.md"]
DEFAULT_EXCLUDES: List[str] = [
    "**/node_modules/**",
    "**/.git/**",
    "**/.venv/**",
    ".docask/**",
]


CONFIG_SCHEMA: SchemaSpec = {
    "name": {"type": str, "default": "docask"},
    "vector_store_id": {"type": (str, type(None)), "default": None},
    "assistant_id": {"type": (str, type(None)), "default": None},
    "model": {"type": str, "default": "gpt-4o-mini"},
    "includes": {
        "type": list,
        "item_type": str,
        "default_factory": lambda: list(DEFAULT_INCLUDES),
    },
    "excludes": {
        "type": list,
        "item_type": str,
        "default_factory": lambda: list(DEFAULT_EXCLUDES),
    },
    "debounce_ms": {"type": int, "default": 1500, "positive": True},
    "batch_max": {"type": int, "default": 20, "positive": True},
    "expires_after_hours": {"type": (int, type(None)), "default": None, "positive": True},
    "retries": {
        "type": dict,
        "schema": {
            "max_attempts": {"type": int, "default": 5, "positive": True},
            "base_delay": {"type": (int, float), "default": 0.5, "positive": True},
            "max_delay": {"type": (int, float), "default": 8.0, "positive": True},
        },
        "default": {},
    },
    "logging": {
        "type": dict,
        "schema": {
            "level": {"type": str, "default": "INFO"},
        },
        "default": {},
    },
}


class ConfigurationError(RuntimeError):
    """Raised when docask cannot run with the current configuration."""


@dataclass
class Diagnostic:
    """Represents a configuration validation or loading issue."""

    level: DiagnosticLevel
    message: str
    source: Optional[Path] = None


@dataclass
class ConfigurationBundle:
    """All configuration data docask needs at runtime."""

    root_dir: Path
    status: ConfigurationStatus
    config_path: Optional[Path] = None
    merged: Dict[str, Any] = field(default_factory=dict)
    document: Dict[str, Any] = field(default_factory=dict)
    file_loaded: bool = False
    diagnostics: List[Diagnostic] = field(default_factory=list)
    log_path: Optional[Path] = None

    @property
    def state_path(self) -> Path:
        return self.root_dir / STATE_FILENAME


@dataclass(frozen=True)
class DocaskSettings:
    """Typed view over the merged configuration plus environment overrides."""

    name: str = "docask"
    vector_store_id: Optional[str] = None
    assistant_id: Optional[str] = None
    model: str = "gpt-4o-mini"
    globs: GlobConfig = field(default_factory=GlobConfig)
    debounce_ms: int = 1500
    batch_max: int = 20
    expires_after_hours: Optional[int] = None
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
    ) -> "DocaskSettings":
        env_source = os.environ if env is None else env
        # Fill schema defaults; issues were already reported by load_configuration.
        raw = deepcopy(dict(config or {}))
        _validate_schema(raw, [])
        retries = raw["retries"]

        name = env_source.get(NAME_ENV) or raw["name"]
        vector_store_id = env_source.get(STORE_ID_ENV) or raw["vector_store_id"] or None

        expires = raw["expires_after_hours"]
        env_expires = env_source.get(EXPIRES_ENV)
        if env_expires:
            try:
                expires = int(env_expires)
            except ValueError:
                logger.warning("Ignoring non-integer %s=%r", EXPIRES_ENV, env_expires)
        if expires is not None and expires <= 0:
            logger.warning("Ignoring non-positive store expiry of %s hours", expires)
            expires = None

        return cls(
            name=name,
            vector_store_id=vector_store_id,
            assistant_id=raw["assistant_id"] or None,
            model=raw["model"],
            globs=GlobConfig(
                includes=tuple(raw["includes"]),
                excludes=tuple(raw["excludes"]),
            ),
            debounce_ms=raw["debounce_ms"],
            batch_max=raw["batch_max"],
            expires_after_hours=expires,
            retry=RetryConfig(
                max_attempts=retries["max_attempts"],
                base_delay=float(retries["base_delay"]),
                max_delay=float(retries["max_delay"]),
            ),
        )

    @property
    def expires_after_days(self) -> Optional[int]:
        """Store expiry in whole days, as the remote API expects."""
        if self.expires_after_hours is None:
            return None
        return max(1, math.ceil(self.expires_after_hours / 24))

    def require_store_id(self) -> str:
        if not self.vector_store_id:
            raise ConfigurationError(
                f"No vector store configured. Set {STORE_ID_ENV} or run `docask init`."
            )
        return self.vector_store_id


def resolve_root_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """Resolve the project root from the environment."""

    env_source = os.environ if env is None else env
    raw = env_source.get(ROOT_ENV)
    if not raw:
        return Path.cwd()
    return Path(raw).expanduser()


def resolve_api_key(env: Optional[Mapping[str, str]] = None) -> str:
    """Return the first non-empty access token, in priority order."""

    env_source = os.environ if env is None else env
    for name in API_KEY_ENV_VARS:
        value = (env_source.get(name) or "").strip()
        if value:
            return value
    raise ConfigurationError(
        "No API key found. Set one of: " + ", ".join(API_KEY_ENV_VARS) + "."
    )


def load_configuration(root_dir: Optional[Path] = None) -> ConfigurationBundle:
    """Load the config document under the project root and apply defaults."""

    resolved_root = root_dir or resolve_root_dir()
    diagnostics: List[Diagnostic] = []
    config_path = resolved_root / CONFIG_FILENAME
    status: ConfigurationStatus = "ready"
    document: Dict[str, Any] = {}
    file_loaded = False

    if not resolved_root.exists():
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Project directory '{resolved_root}' does not exist.",
            )
        )
        status = "missing"
    elif not resolved_root.is_dir():
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Project path '{resolved_root}' is not a directory.",
            )
        )
        status = "invalid"
    else:
        document, file_loaded = _load_document(config_path, diagnostics)

    merged = deepcopy(document)
    _validate_schema(merged, diagnostics)

    if status == "ready" and any(diag.level == "error" for diag in diagnostics):
        status = "invalid"

    return ConfigurationBundle(
        root_dir=resolved_root,
        status=status,
        config_path=config_path,
        merged=merged,
        document=document,
        file_loaded=file_loaded,
        diagnostics=diagnostics,
    )


def save_configuration(bundle: ConfigurationBundle, updates: Mapping[str, Any]) -> bool:
    """Merge ``updates`` into the config document and write it back.

    Write failures are logged and swallowed; the in-memory bundle is updated
    either way so the current process keeps working with the new values.
    """

    _deep_merge_dicts(bundle.document, updates)
    _deep_merge_dicts(bundle.merged, updates)
    path = bundle.config_path or bundle.root_dir / CONFIG_FILENAME
    try:
        path.write_text(
            yaml.safe_dump(bundle.document, sort_keys=False),
            encoding="utf-8",
        )
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not write configuration to %s: %s", path, exc)
        return False
    bundle.file_loaded = True
    logger.debug("Saved configuration to %s", path)
    return True


def _load_document(
    path: Path,
    diagnostics: List[Diagnostic],
) -> Tuple[Dict[str, Any], bool]:
    if not path.exists():
        diagnostics.append(
            Diagnostic(
                level="info",
                message=f"No configuration file at '{path}'; using defaults.",
                source=path,
            )
        )
        return {}, False

    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        diagnostics.append(
            Diagnostic(
                level="error",
                message=f"Failed to parse '{path}': {exc}",
                source=path,
            )
        )
        return {}, False

    if content is None:
        return {}, True

    if not isinstance(content, MutableMapping):
        diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"Ignoring '{path}' because it does not contain a mapping.",
                source=path,
            )
        )
        return {}, False

    return dict(content), True


def _deep_merge_dicts(dest: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    """Recursively merge mapping values."""

    for key, value in source.items():
        if (
            key in dest
            and isinstance(dest[key], MutableMapping)
            and isinstance(value, Mapping)
        ):
            _deep_merge_dicts(dest[key], value)
        else:
            dest[key] = deepcopy(value)


def _default_from_spec(spec: SchemaSpec) -> Any:
    if "default_factory" in spec and callable(spec["default_factory"]):
        return spec["default_factory"]()
    return deepcopy(spec.get("default"))


def _type_name(expected_type: Any) -> str:
    if isinstance(expected_type, tuple):
        return ", ".join(t.__name__ for t in expected_type)
    return expected_type.__name__


def _validate_schema(config: Dict[str, Any], diagnostics: List[Diagnostic]) -> None:
    _validate_section(config, CONFIG_SCHEMA, "config", diagnostics)

    retries = config["retries"]
    if retries["max_delay"] < retries["base_delay"]:
        diagnostics.append(
            Diagnostic(
                level="error",
                message=(
                    "'config.retries.max_delay' must not be smaller than "
                    "'config.retries.base_delay'."
                ),
            )
        )
        retry_schema = CONFIG_SCHEMA["retries"]["schema"]
        retries["base_delay"] = _default_from_spec(retry_schema["base_delay"])
        retries["max_delay"] = _default_from_spec(retry_schema["max_delay"])


def _validate_section(
    target: Dict[str, Any],
    schema: SchemaSpec,
    path: str,
    diagnostics: List[Diagnostic],
) -> None:
    for key in list(target.keys()):
        if key not in schema:
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Unknown configuration key '{path}.{key}'.",
                )
            )

    for key, spec in schema.items():
        child_path = f"{path}.{key}"
        if key not in target:
            if "default" in spec or "default_factory" in spec:
                target[key] = _default_from_spec(spec)
            if spec.get("type") is dict:
                _validate_section(target[key], spec.get("schema", {}), child_path, diagnostics)
            continue

        value = target[key]
        expected_type = spec.get("type")

        if expected_type is dict:
            if not isinstance(value, dict):
                diagnostics.append(
                    Diagnostic(
                        level="error",
                        message=f"'{child_path}' must be a mapping.",
                    )
                )
                value = _default_from_spec(spec) or {}
                target[key] = value
            _validate_section(value, spec.get("schema", {}), child_path, diagnostics)
        elif expected_type is list:
            if not isinstance(value, list):
                diagnostics.append(
                    Diagnostic(
                        level="error",
                        message=f"'{child_path}' must be a list.",
                    )
                )
                target[key] = _default_from_spec(spec) or []
                continue
            item_type = spec.get("item_type")
            if item_type is not None:
                filtered: List[Any] = []
                for idx, item in enumerate(value):
                    if isinstance(item, item_type):
                        filtered.append(item)
                    else:
                        diagnostics.append(
                            Diagnostic(
                                level="error",
                                message=(
                                    f"'{child_path}[{idx}]' must be of type "
                                    f"{item_type.__name__}."
                                ),
                            )
                        )
                target[key] = filtered
        elif expected_type and (
            not isinstance(value, expected_type) or isinstance(value, bool)
        ):
            # bool is an int subclass; reject it for numeric options.
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"'{child_path}' must be of type {_type_name(expected_type)}.",
                )
            )
            target[key] = _default_from_spec(spec)
        elif spec.get("positive") and value is not None and value <= 0:
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"'{child_path}' must be greater than zero.",
                )
            )
            target[key] = _default_from_spec(spec)


__all__ = [
    "API_KEY_ENV_VARS",
    "CONFIG_FILENAME",
    "ConfigurationBundle",
    "ConfigurationError",
    "ConfigurationStatus",
    "Diagnostic",
    "DocaskSettings",
    "STATE_FILENAME",
    "load_configuration",
    "resolve_api_key",
    "resolve_root_dir",
    "save_configuration",
]
