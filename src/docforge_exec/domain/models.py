"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass, replace
from datetime import datetime, timezone
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar, cast

from docforge_exec.domain import ids as domain_ids

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017


JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_MESSAGE = 64 * 1024
_MAX_ENV_ENTRIES = 256
_MAX_PACKAGES = 512

# Versions starting with one of these are range constraints and pass through untouched.
_RANGE_OPERATOR_PREFIXES = ("<", ">", "=", "!", "~")
_PACKAGE_TEXT_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._\-]*(?:\[[^\]]*\])?)\s*(.*?)\s*$")


class ScriptLanguage(StrEnum):
    PYTHON = "python"
    SHELL = "shell"
    POWERSHELL = "powershell"


class RunStatus(StrEnum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


TERMINAL_RUN_STATUSES: frozenset[RunStatus] = frozenset(
    {RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.CANCELLED}
)


class LogLevel(StrEnum):
    INFO = "INFO"
    ERROR = "ERROR"


class ConsoleMode(StrEnum):
    IN_APP = "in-app"
    HIDDEN = "hidden"
    WINDOWS_TERMINAL = "windows-terminal"


class ExecutionMode(StrEnum):
    RUN = "run"
    TEST = "test"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        if not isinstance(raw, str):
            _fail(cls.__name__, f"expected JSON string, got {type(raw).__name__}")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = _MAX_TEXT,
    strip: bool = True,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip() if strip else value
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str | None:
    """Blank strings collapse to ``None`` so optional text never persists as ``""``."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return _as_str(value, path, max_len=max_len)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_optional_int(value: object, path: str, *, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    return _as_int(value, path, minimum=minimum)


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _as_optional_datetime(value: object, path: str) -> datetime | None:
    if value is None:
        return None
    return _as_datetime(value, path)


def _datetime_to_iso8601z(value: datetime) -> str:
    normalized = _as_datetime(value, "datetime")
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_dict(value: object, path: str, *, max_entries: int = _MAX_ENV_ENTRIES) -> dict[str, str]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    if len(value) > max_entries:
        _fail(path, f"contains too many entries (>{max_entries})")

    parsed: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"key must be string, got {type(key).__name__}")
        parsed_key = _as_str(key, f"{path}.<key>")
        if not isinstance(item, str):
            _fail(f"{path}.{parsed_key}", f"expected string, got {type(item).__name__}")
        parsed[parsed_key] = item
    return parsed


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            _fail(path, "enum value must be string")
        return raw
    if isinstance(value, datetime):
        return _datetime_to_iso8601z(value)
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if is_dataclass(value):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


def _validate_env_id(value: str, path: str) -> str:
    try:
        domain_ids.validate_env_id(value)
    except ValueError as exc:
        _fail(path, str(exc))
    return value


def _validate_run_id(value: str, path: str) -> str:
    try:
        domain_ids.validate_run_id(value)
    except ValueError as exc:
        _fail(path, str(exc))
    return value


def parse_environment_variables(raw: object, path: str = "environment_variables") -> dict[str, str]:
    """Coerce a JSON text or mapping into a ``str -> str`` variable map.

    ``None`` values are dropped, scalars are stringified, blank keys are skipped.
    Anything other than an object is rejected.
    """
    if raw is None:
        return {}
    value: object = raw
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(path, f"invalid JSON: {exc}")
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"key must be string, got {type(key).__name__}")
        name = key.strip()
        if not name or item is None:
            continue
        if isinstance(item, str):
            parsed[name] = item
        elif isinstance(item, bool):
            parsed[name] = "true" if item else "false"
        elif isinstance(item, (int, float)):
            parsed[name] = str(item)
        else:
            parsed[name] = _canonical_json(cast("JSONValue", item))
    return parsed


def format_environment_variables(variables: Mapping[str, str]) -> str:
    """Render variables as canonical JSON (sorted keys) for storage."""
    return _canonical_json({key: variables[key] for key in sorted(variables)})


def merge_environment_variables(*layers: Mapping[str, str] | None) -> dict[str, str]:
    """Overlay variable maps left to right; later layers win."""
    merged: dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            if key:
                merged[key] = value
    return merged


@dataclass(frozen=True, slots=True)
class PackageSpec(CanonicalModel):
    """One requested package: a name plus an optional version or range constraint."""

    name: str
    version: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _as_str(self.name, "PackageSpec.name", max_len=256))
        object.__setattr__(
            self,
            "version",
            _as_optional_str(self.version, "PackageSpec.version", max_len=256),
        )

    def requirement(self) -> str:
        """Render the pip requirement string.

        Missing or ``latest`` versions install the bare name. Constraints that start with
        an operator or contain a wildcard pass through as written; any other version is
        pinned with ``==``.
        """
        version = self.version
        if version is None or version.lower() == "latest":
            return self.name
        if version.startswith(_RANGE_OPERATOR_PREFIXES) or "*" in version:
            return f"{self.name}{version}"
        return f"{self.name}=={version}"

    @classmethod
    def parse(cls, text: str) -> PackageSpec:
        """Parse ``name``, ``name==1.0`` or ``name>=1,<2`` style requirement text."""
        raw = _as_str(text, "PackageSpec")
        match = _PACKAGE_TEXT_RE.match(raw)
        if match is None:
            _fail("PackageSpec", f"cannot parse package requirement {text!r}")
        name, rest = match.group(1), match.group(2)
        if rest.startswith("==") and not rest.startswith("==="):
            rest = rest[2:].strip()
        return cls(name=name, version=rest or None)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PackageSpec:
        parsed = _expect_object(data, "PackageSpec", required={"name"}, optional={"version"})
        return cls(
            name=_as_str(parsed["name"], "PackageSpec.name"),
            version=_as_optional_str(parsed.get("version"), "PackageSpec.version"),
        )


def _as_package_tuple(value: object, path: str) -> tuple[PackageSpec, ...]:
    items = _as_sequence(value, path)
    if len(items) > _MAX_PACKAGES:
        _fail(path, f"too many items (>{_MAX_PACKAGES})")
    parsed: list[PackageSpec] = []
    for index, item in enumerate(items):
        if isinstance(item, PackageSpec):
            parsed.append(item)
        elif isinstance(item, str):
            parsed.append(PackageSpec.parse(item))
        elif isinstance(item, Mapping):
            parsed.append(PackageSpec.from_dict(item))
        else:
            _fail(f"{path}[{index}]", f"expected package spec, got {type(item).__name__}")
    return tuple(parsed)


@dataclass(frozen=True, slots=True)
class EnvironmentConfig(CanonicalModel):
    """Typed configuration record persisted alongside an environment row."""

    packages: tuple[PackageSpec, ...] = ()
    environment_variables: Mapping[str, str] = field(default_factory=dict)
    base_interpreter: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "packages", _as_package_tuple(self.packages, "EnvironmentConfig.packages")
        )
        object.__setattr__(
            self,
            "environment_variables",
            _as_str_dict(self.environment_variables, "EnvironmentConfig.environment_variables"),
        )
        object.__setattr__(
            self,
            "base_interpreter",
            _as_optional_str(self.base_interpreter, "EnvironmentConfig.base_interpreter"),
        )

    def merged(
        self,
        *,
        packages: tuple[PackageSpec, ...] | list[PackageSpec] | None = None,
        environment_variables: Mapping[str, str] | None = None,
    ) -> EnvironmentConfig:
        """Return a copy with each provided field replacing the stored one."""
        updated = self
        if packages is not None:
            updated = replace(updated, packages=tuple(packages))
        if environment_variables is not None:
            updated = replace(updated, environment_variables=dict(environment_variables))
        return updated

    def requirements(self) -> tuple[str, ...]:
        return tuple(package.requirement() for package in self.packages)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EnvironmentConfig:
        parsed = _expect_object(
            data,
            "EnvironmentConfig",
            required=set(),
            optional={"packages", "environment_variables", "base_interpreter"},
        )
        return cls(
            packages=_as_package_tuple(parsed.get("packages", ()), "EnvironmentConfig.packages"),
            environment_variables=parse_environment_variables(
                parsed.get("environment_variables"), "EnvironmentConfig.environment_variables"
            ),
            base_interpreter=_as_optional_str(
                parsed.get("base_interpreter"), "EnvironmentConfig.base_interpreter"
            ),
        )


@dataclass(slots=True)
class Environment(CanonicalModel):
    env_id: str
    name: str
    python_executable: str
    python_version: str
    managed: bool
    created_at: datetime
    updated_at: datetime
    config: EnvironmentConfig = field(default_factory=EnvironmentConfig)
    working_directory: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        self.env_id = _validate_env_id(_as_str(self.env_id, "Environment.env_id"), "Environment.env_id")
        self.name = _as_str(self.name, "Environment.name", max_len=256)
        self.python_executable = _as_str(self.python_executable, "Environment.python_executable")
        self.python_version = _as_str(self.python_version, "Environment.python_version", max_len=64)
        self.managed = _as_bool(self.managed, "Environment.managed")
        if not isinstance(self.config, EnvironmentConfig):
            _fail("Environment.config", f"expected EnvironmentConfig, got {type(self.config).__name__}")
        self.working_directory = _as_optional_str(
            self.working_directory, "Environment.working_directory"
        )
        self.description = _as_optional_str(self.description, "Environment.description")
        self.created_at = _as_datetime(self.created_at, "Environment.created_at")
        self.updated_at = _as_datetime(self.updated_at, "Environment.updated_at")

    @property
    def packages(self) -> tuple[PackageSpec, ...]:
        return self.config.packages

    @property
    def environment_variables(self) -> dict[str, str]:
        return dict(self.config.environment_variables)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Environment:
        parsed = _expect_object(
            data,
            "Environment",
            required={
                "env_id",
                "name",
                "python_executable",
                "python_version",
                "managed",
                "created_at",
                "updated_at",
            },
            optional={"config", "working_directory", "description"},
        )
        raw_config = parsed.get("config", {})
        if not isinstance(raw_config, Mapping):
            _fail("Environment.config", f"expected object, got {type(raw_config).__name__}")
        return cls(
            env_id=_as_str(parsed["env_id"], "Environment.env_id"),
            name=_as_str(parsed["name"], "Environment.name"),
            python_executable=_as_str(parsed["python_executable"], "Environment.python_executable"),
            python_version=_as_str(parsed["python_version"], "Environment.python_version"),
            managed=_as_bool(parsed["managed"], "Environment.managed"),
            created_at=_as_datetime(parsed["created_at"], "Environment.created_at"),
            updated_at=_as_datetime(parsed["updated_at"], "Environment.updated_at"),
            config=EnvironmentConfig.from_dict(raw_config),
            working_directory=_as_optional_str(
                parsed.get("working_directory"), "Environment.working_directory"
            ),
            description=_as_optional_str(parsed.get("description"), "Environment.description"),
        )


@dataclass(frozen=True, slots=True)
class InterpreterInfo(CanonicalModel):
    """A Python interpreter found on the host."""

    path: str
    version: str
    display_name: str
    is_default: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", _as_str(self.path, "InterpreterInfo.path"))
        object.__setattr__(
            self, "version", _as_str(self.version, "InterpreterInfo.version", max_len=64)
        )
        object.__setattr__(
            self, "display_name", _as_str(self.display_name, "InterpreterInfo.display_name")
        )
        object.__setattr__(self, "is_default", _as_bool(self.is_default, "InterpreterInfo.is_default"))

    @property
    def version_key(self) -> tuple[int, ...]:
        return version_sort_key(self.version)


def version_sort_key(version: str) -> tuple[int, ...]:
    """Numeric sort key for dotted versions; non-numeric segments sort as 0."""
    key: list[int] = []
    for part in version.split("."):
        digits = re.match(r"\d+", part)
        key.append(int(digits.group(0)) if digits else 0)
    return tuple(key)


@dataclass(slots=True)
class Run(CanonicalModel):
    run_id: str
    node_id: str
    language: ScriptLanguage
    status: RunStatus
    started_at: datetime
    env_id: str | None = None
    finished_at: datetime | None = None
    exit_code: int | None = None
    error_message: str | None = None
    duration_ms: int | None = None

    def __post_init__(self) -> None:
        self.run_id = _validate_run_id(_as_str(self.run_id, "Run.run_id"), "Run.run_id")
        self.node_id = _as_str(self.node_id, "Run.node_id", max_len=512)
        self.language = _as_enum(ScriptLanguage, self.language, "Run.language")
        self.status = _as_enum(RunStatus, self.status, "Run.status")
        self.started_at = _as_datetime(self.started_at, "Run.started_at")
        self.env_id = _as_optional_str(self.env_id, "Run.env_id")
        self.finished_at = _as_optional_datetime(self.finished_at, "Run.finished_at")
        self.exit_code = _as_optional_int(self.exit_code, "Run.exit_code")
        self.error_message = _as_optional_str(
            self.error_message, "Run.error_message", max_len=_MAX_MESSAGE
        )
        self.duration_ms = _as_optional_int(self.duration_ms, "Run.duration_ms", minimum=0)
        if self.status is RunStatus.RUNNING and self.finished_at is not None:
            _fail("Run.finished_at", "a running run must not have a finish time")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Run:
        parsed = _expect_object(
            data,
            "Run",
            required={"run_id", "node_id", "language", "status", "started_at"},
            optional={"env_id", "finished_at", "exit_code", "error_message", "duration_ms"},
        )
        return cls(
            run_id=_as_str(parsed["run_id"], "Run.run_id"),
            node_id=_as_str(parsed["node_id"], "Run.node_id"),
            language=_as_enum(ScriptLanguage, parsed["language"], "Run.language"),
            status=_as_enum(RunStatus, parsed["status"], "Run.status"),
            started_at=_as_datetime(parsed["started_at"], "Run.started_at"),
            env_id=_as_optional_str(parsed.get("env_id"), "Run.env_id"),
            finished_at=_as_optional_datetime(parsed.get("finished_at"), "Run.finished_at"),
            exit_code=_as_optional_int(parsed.get("exit_code"), "Run.exit_code"),
            error_message=_as_optional_str(
                parsed.get("error_message"), "Run.error_message", max_len=_MAX_MESSAGE
            ),
            duration_ms=_as_optional_int(parsed.get("duration_ms"), "Run.duration_ms", minimum=0),
        )


@dataclass(frozen=True, slots=True)
class LogEntry(CanonicalModel):
    """One captured output line or narration line; ``sequence`` is the storage ordinal."""

    run_id: str
    timestamp: datetime
    level: LogLevel
    message: str
    sequence: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "run_id", _as_str(self.run_id, "LogEntry.run_id"))
        object.__setattr__(self, "timestamp", _as_datetime(self.timestamp, "LogEntry.timestamp"))
        object.__setattr__(self, "level", _as_enum(LogLevel, self.level, "LogEntry.level"))
        object.__setattr__(
            self,
            "message",
            _as_str(self.message, "LogEntry.message", max_len=_MAX_MESSAGE, strip=False),
        )
        object.__setattr__(
            self, "sequence", _as_optional_int(self.sequence, "LogEntry.sequence", minimum=1)
        )


@dataclass(slots=True)
class NodeBinding(CanonicalModel):
    """Per-(node, language) execution preference and most recent run reference."""

    node_id: str
    language: ScriptLanguage = ScriptLanguage.PYTHON
    env_id: str | None = None
    auto_detect: bool = True
    last_run_id: str | None = None
    environment_variables: dict[str, str] = field(default_factory=dict)
    working_directory: str | None = None
    executable: str | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.node_id = _as_str(self.node_id, "NodeBinding.node_id", max_len=512)
        self.language = _as_enum(ScriptLanguage, self.language, "NodeBinding.language")
        self.env_id = _as_optional_str(self.env_id, "NodeBinding.env_id")
        self.auto_detect = _as_bool(self.auto_detect, "NodeBinding.auto_detect")
        self.last_run_id = _as_optional_str(self.last_run_id, "NodeBinding.last_run_id")
        self.environment_variables = _as_str_dict(
            self.environment_variables, "NodeBinding.environment_variables"
        )
        self.working_directory = _as_optional_str(
            self.working_directory, "NodeBinding.working_directory"
        )
        self.executable = _as_optional_str(self.executable, "NodeBinding.executable")
        self.updated_at = _as_optional_datetime(self.updated_at, "NodeBinding.updated_at")

    @property
    def pinned_env_id(self) -> str | None:
        """The environment to use directly, or ``None`` when auto-detection applies."""
        if self.auto_detect:
            return None
        return self.env_id

    @classmethod
    def default(
        cls, node_id: str, language: ScriptLanguage = ScriptLanguage.PYTHON
    ) -> NodeBinding:
        return cls(node_id=node_id, language=language)


@dataclass(frozen=True, slots=True)
class EnvironmentDefaults(CanonicalModel):
    """Caller defaults used when a node's environment must be auto-provisioned."""

    target_python_version: str | None = None
    base_packages: tuple[PackageSpec, ...] = ()
    environment_variables: Mapping[str, str] = field(default_factory=dict)
    working_directory: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "target_python_version",
            _as_optional_str(
                self.target_python_version, "EnvironmentDefaults.target_python_version", max_len=64
            ),
        )
        object.__setattr__(
            self,
            "base_packages",
            _as_package_tuple(self.base_packages, "EnvironmentDefaults.base_packages"),
        )
        object.__setattr__(
            self,
            "environment_variables",
            _as_str_dict(self.environment_variables, "EnvironmentDefaults.environment_variables"),
        )
        object.__setattr__(
            self,
            "working_directory",
            _as_optional_str(self.working_directory, "EnvironmentDefaults.working_directory"),
        )


__all__ = [
    "CanonicalModel",
    "ConsoleMode",
    "Environment",
    "EnvironmentConfig",
    "EnvironmentDefaults",
    "ExecutionMode",
    "InterpreterInfo",
    "JSONValue",
    "LogEntry",
    "LogLevel",
    "NodeBinding",
    "PackageSpec",
    "Run",
    "RunStatus",
    "ScriptLanguage",
    "TERMINAL_RUN_STATUSES",
    "format_environment_variables",
    "merge_environment_variables",
    "parse_environment_variables",
    "version_sort_key",
]
