"""
docforge-exec — configuration schema and validation.

File: src/docforge_exec/config/schema.py
Last updated: 2026-10-17

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helper.
- Conversion of validated config into typed execution defaults.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject unknown keys.

Non-functional requirements
- Keep rules deterministic and easy to audit.
- Preserve backwards compatibility through explicit migration messages.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from docforge_exec.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_RUN_HISTORY_LIMIT,
    ENVIRONMENTS_DIR,
    STATE_DB_PATH,
)
from docforge_exec.domain.models import ConsoleMode, EnvironmentDefaults, PackageSpec

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "console")
MAX_HISTORY_LIMIT: Final[int] = 1_000

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "state_db"),
    ("paths", "environments_root"),
)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    state_db: str
    environments_root: str


class ExecutionSection(TypedDict):
    default_python_version: NotRequired[str]
    base_packages: list[str]
    console_mode: Literal["in-app", "hidden", "windows-terminal"]
    cancel_grace_seconds: float
    version_probe_timeout_seconds: float
    provisioning_timeout_seconds: float
    history_limit: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "console"]


class ExecConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    execution: ExecutionSection
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[ExecConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "paths": {
        "state_db": STATE_DB_PATH.as_posix(),
        "environments_root": ENVIRONMENTS_DIR.as_posix(),
    },
    "execution": {
        "base_packages": [],
        "console_mode": "in-app",
        "cancel_grace_seconds": 5.0,
        "version_probe_timeout_seconds": 5.0,
        "provisioning_timeout_seconds": 900.0,
        "history_limit": DEFAULT_RUN_HISTORY_LIMIT,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "console",
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> ExecConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade docforge-exec.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the docforge-exec runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    _reject_unknown_keys(root, {"meta", "paths", "execution", "observability"}, "", issues)
    out: dict[str, Any] = {}
    for key, validator in (
        ("meta", _validate_meta),
        ("paths", _validate_paths),
        ("execution", _validate_execution),
        ("observability", _validate_observability),
    ):
        _section(root, key=key, issues=issues, validator=validator, out=out)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=out, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def execution_defaults(config: Mapping[str, Any]) -> EnvironmentDefaults:
    """Caller defaults for on-demand node environments, from validated config."""

    execution = config["execution"]
    return EnvironmentDefaults(
        target_python_version=execution.get("default_python_version"),
        base_packages=tuple(PackageSpec.parse(item) for item in execution["base_packages"]),
    )


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        issues.add(key, "missing required section")
        return
    section_obj = _as_object(raw, key, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, key, issues)


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(payload["schema_version"], _join(path, "schema_version"), issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_paths(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"state_db", "environments_root"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_execution(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    required = {
        "base_packages",
        "console_mode",
        "cancel_grace_seconds",
        "version_probe_timeout_seconds",
        "provisioning_timeout_seconds",
        "history_limit",
    }
    _reject_unknown_keys(payload, {*required, "default_python_version"}, path, issues)
    _require_keys(payload, required, path, issues)

    out: dict[str, Any] = {}
    if "default_python_version" in payload:
        parsed_version = _as_str(
            payload["default_python_version"], _join(path, "default_python_version"), issues
        )
        if parsed_version is not None:
            out["default_python_version"] = parsed_version

    if "base_packages" in payload:
        parsed_packages = _as_package_list(
            payload["base_packages"], _join(path, "base_packages"), issues
        )
        if parsed_packages is not None:
            out["base_packages"] = parsed_packages

    if "console_mode" in payload:
        parsed_mode = _as_enum(
            payload["console_mode"],
            _join(path, "console_mode"),
            issues,
            allowed_values=tuple(mode.value for mode in ConsoleMode),
        )
        if parsed_mode is not None:
            out["console_mode"] = parsed_mode

    for key in (
        "cancel_grace_seconds",
        "version_probe_timeout_seconds",
        "provisioning_timeout_seconds",
    ):
        if key in payload:
            parsed_seconds = _as_positive_float(payload[key], _join(path, key), issues)
            if parsed_seconds is not None:
                out[key] = parsed_seconds

    if "history_limit" in payload:
        parsed_limit = _as_int(
            payload["history_limit"], _join(path, "history_limit"), issues, minimum=1
        )
        if parsed_limit is not None:
            if parsed_limit > MAX_HISTORY_LIMIT:
                issues.add(_join(path, "history_limit"), f"must be <= {MAX_HISTORY_LIMIT}")
            else:
                out["history_limit"] = parsed_limit
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_format"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_log_level = _as_enum(
            payload["log_level"], _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level

    if "log_format" in payload:
        parsed_log_format = _as_enum(
            payload["log_format"], _join(path, "log_format"), issues, allowed_values=LOG_FORMATS
        )
        if parsed_log_format is not None:
            out["log_format"] = parsed_log_format
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_package_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, list):
        issues.add(path, f"expected array, got {type(value).__name__}")
        return None
    parsed: list[str] = []
    for index, item in enumerate(value):
        item_path = f"{path}[{index}]"
        text = _as_str(item, item_path, issues)
        if text is None:
            continue
        try:
            PackageSpec.parse(text)
        except ValueError as exc:
            issues.add(item_path, str(exc))
            continue
        parsed.append(text)
    return parsed


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_positive_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if parsed <= 0:
        issues.add(path, "must be > 0")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if not isinstance(existing, dict):
                existing = {}
                target[key] = existing
            _merge_into(existing, value)
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "ExecConfig",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "MAX_HISTORY_LIMIT",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "execution_defaults",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
