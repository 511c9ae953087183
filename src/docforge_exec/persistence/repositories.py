"""
docforge-exec — module skeleton

File: src/docforge_exec/persistence/repositories.py
Last updated: 2026-10-17

Purpose
- Repository/DAO classes for reading/writing execution entities to the state DB.

What should be included in this file
- Repositories: EnvironmentRepo, RunRepo, RunLogRepo, NodeBindingRepo.
- Query patterns needed by the service facade and CLI (recent runs per node,
  ordered log replay, per-language binding lookups).

Functional requirements
- Every write is a single statement; no repository call spans a transaction.
- Run finalization only succeeds from ``running`` and reports whether it applied.
- Log rows are append-only and read back in insertion order.

Non-functional requirements
- Must be efficient; avoid loading entire run history into memory.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Final, cast

from docforge_exec.domain import ids
from docforge_exec.domain.models import (
    Environment,
    EnvironmentConfig,
    LogEntry,
    LogLevel,
    NodeBinding,
    Run,
    RunStatus,
    ScriptLanguage,
    format_environment_variables,
    parse_environment_variables,
)
from docforge_exec.persistence.state_db import RowValue, SQLParams, StateDB

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017

_MAX_PAGE_SIZE: Final[int] = 1_000

_RUN_COLUMNS: Final[str] = (
    "run_id, node_id, language, env_id, status, started_at, finished_at, "
    "exit_code, error_message, duration_ms"
)
_ENVIRONMENT_COLUMNS: Final[str] = (
    "env_id, name, python_executable, python_version, managed, config_json, "
    "working_directory, description, created_at, updated_at"
)
_BINDING_COLUMNS: Final[str] = (
    "node_id, language, env_id, auto_detect, last_run_id, env_vars_json, "
    "working_directory, executable, updated_at"
)


class _BaseRepo:
    def __init__(self, db: StateDB) -> None:
        self._db = db
        self._db.ensure_migrated()

    @staticmethod
    def _validate_page(limit: int, offset: int) -> None:
        if limit <= 0 or limit > _MAX_PAGE_SIZE:
            raise ValueError(f"limit must be in [1, {_MAX_PAGE_SIZE}]")
        if offset < 0:
            raise ValueError("offset must be >= 0")


class EnvironmentRepo(_BaseRepo):
    """Repository for registered interpreter environments."""

    def add(self, environment: Environment) -> Environment:
        self._db.execute(
            f"""
            INSERT INTO environments ({_ENVIRONMENT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            _environment_params(environment),
        )
        return environment

    def save(self, environment: Environment) -> Environment:
        updated = self._db.execute(
            """
            UPDATE environments SET
                name = ?,
                python_executable = ?,
                python_version = ?,
                managed = ?,
                config_json = ?,
                working_directory = ?,
                description = ?,
                updated_at = ?
            WHERE env_id = ?
            """,
            (
                environment.name,
                environment.python_executable,
                environment.python_version,
                1 if environment.managed else 0,
                environment.config.to_json(),
                environment.working_directory,
                environment.description,
                _iso8601z(environment.updated_at),
                environment.env_id,
            ),
        )
        if updated == 0:
            raise ValueError(f"env_id not found: {environment.env_id}")
        return environment

    def get(self, env_id: str) -> Environment | None:
        row = self._db.query_one(
            f"SELECT {_ENVIRONMENT_COLUMNS} FROM environments WHERE env_id = ?",
            (env_id,),
        )
        if row is None:
            return None
        return _environment_from_row(row)

    def list(self, *, limit: int = _MAX_PAGE_SIZE, offset: int = 0) -> list[Environment]:
        self._validate_page(limit, offset)
        rows = self._db.query_all(
            f"""
            SELECT {_ENVIRONMENT_COLUMNS} FROM environments
            ORDER BY name ASC, env_id ASC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
        )
        return [_environment_from_row(row) for row in rows]

    def delete(self, env_id: str) -> bool:
        deleted = self._db.execute("DELETE FROM environments WHERE env_id = ?", (env_id,))
        return deleted > 0


class RunRepo(_BaseRepo):
    """Repository for run records and their one-way status transition."""

    def add(self, run: Run) -> Run:
        if run.status is not RunStatus.RUNNING:
            raise ValueError(f"Run.status: new runs must be running, got {run.status.value!r}")
        self._db.execute(
            f"INSERT INTO runs ({_RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                run.run_id,
                run.node_id,
                run.language.value,
                run.env_id,
                run.status.value,
                _iso8601z(run.started_at),
                None,
                None,
                None,
                None,
            ),
        )
        return run

    def get(self, run_id: str) -> Run | None:
        ids.validate_run_id(run_id)
        row = self._db.query_one(f"SELECT {_RUN_COLUMNS} FROM runs WHERE run_id = ?", (run_id,))
        if row is None:
            return None
        return _run_from_row(row)

    def list_for_node(
        self,
        node_id: str,
        *,
        language: ScriptLanguage | str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Run]:
        self._validate_page(limit, offset)
        sql = f"SELECT {_RUN_COLUMNS} FROM runs WHERE node_id = ?"
        params: list[object] = [_as_non_empty_str(node_id, "node_id")]
        if language is not None:
            sql += " AND language = ?"
            params.append(_as_language(language, "language").value)
        sql += " ORDER BY started_at DESC, run_id DESC LIMIT ? OFFSET ?"
        params.extend((limit, offset))
        rows = self._db.query_all(sql, cast("SQLParams", tuple(params)))
        return [_run_from_row(row) for row in rows]

    def finalize(
        self,
        run_id: str,
        status: RunStatus | str,
        *,
        finished_at: datetime,
        exit_code: int | None = None,
        error_message: str | None = None,
        duration_ms: int | None = None,
    ) -> bool:
        """Move a running run to ``status``; returns ``False`` when it was already terminal."""

        ids.validate_run_id(run_id)
        next_status = _as_run_status(status, "status")
        if not next_status.is_terminal:
            raise ValueError(f"status: finalization requires a terminal status, got {next_status.value!r}")
        if duration_ms is not None and duration_ms < 0:
            raise ValueError("duration_ms: must be >= 0")
        updated = self._db.execute(
            """
            UPDATE runs SET
                status = ?,
                finished_at = ?,
                exit_code = ?,
                error_message = ?,
                duration_ms = ?
            WHERE run_id = ? AND status = ?
            """,
            (
                next_status.value,
                _iso8601z(finished_at),
                exit_code,
                error_message,
                duration_ms,
                run_id,
                RunStatus.RUNNING.value,
            ),
        )
        return updated > 0


class RunLogRepo(_BaseRepo):
    """Append-only repository for per-run log lines."""

    def append(
        self,
        run_id: str,
        level: LogLevel | str,
        message: str,
        *,
        timestamp: datetime | None = None,
    ) -> LogEntry:
        entry = LogEntry(
            run_id=run_id,
            timestamp=_utc_now() if timestamp is None else timestamp,
            level=_as_log_level(level, "level"),
            message=message,
        )
        log_id = self._db.execute_returning_id(
            "INSERT INTO run_logs (run_id, timestamp, level, message) VALUES (?, ?, ?, ?)",
            (entry.run_id, _iso8601z(entry.timestamp), entry.level.value, entry.message),
        )
        return LogEntry(
            run_id=entry.run_id,
            timestamp=entry.timestamp,
            level=entry.level,
            message=entry.message,
            sequence=log_id,
        )

    def list_for_run(self, run_id: str, *, after_sequence: int = 0) -> list[LogEntry]:
        if after_sequence < 0:
            raise ValueError("after_sequence must be >= 0")
        rows = self._db.query_all(
            """
            SELECT log_id, run_id, timestamp, level, message
            FROM run_logs
            WHERE run_id = ? AND log_id > ?
            ORDER BY log_id ASC
            """,
            (run_id, after_sequence),
        )
        return [_log_entry_from_row(row) for row in rows]


class NodeBindingRepo(_BaseRepo):
    """Per-(node, language) bindings; every setter is a single upsert."""

    def get(self, node_id: str, language: ScriptLanguage | str = ScriptLanguage.PYTHON) -> NodeBinding:
        parsed_language = _as_language(language, "language")
        row = self._db.query_one(
            f"SELECT {_BINDING_COLUMNS} FROM node_bindings WHERE node_id = ? AND language = ?",
            (_as_non_empty_str(node_id, "node_id"), parsed_language.value),
        )
        if row is None:
            return NodeBinding.default(node_id, parsed_language)
        return _binding_from_row(row)

    def set_environment(
        self,
        node_id: str,
        language: ScriptLanguage | str,
        *,
        env_id: str | None,
        auto_detect: bool,
    ) -> NodeBinding:
        parsed_language = _as_language(language, "language")
        self._db.execute(
            """
            INSERT INTO node_bindings (node_id, language, env_id, auto_detect, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(node_id, language) DO UPDATE SET
                env_id=excluded.env_id,
                auto_detect=excluded.auto_detect,
                updated_at=excluded.updated_at
            """,
            (
                _as_non_empty_str(node_id, "node_id"),
                parsed_language.value,
                env_id,
                1 if auto_detect else 0,
                _iso8601z(_utc_now()),
            ),
        )
        return self.get(node_id, parsed_language)

    def set_script_settings(
        self,
        node_id: str,
        language: ScriptLanguage | str,
        *,
        environment_variables: Mapping[str, str],
        working_directory: str | None,
        executable: str | None,
    ) -> NodeBinding:
        parsed_language = _as_language(language, "language")
        self._db.execute(
            """
            INSERT INTO node_bindings (
                node_id, language, env_vars_json, working_directory, executable, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(node_id, language) DO UPDATE SET
                env_vars_json=excluded.env_vars_json,
                working_directory=excluded.working_directory,
                executable=excluded.executable,
                updated_at=excluded.updated_at
            """,
            (
                _as_non_empty_str(node_id, "node_id"),
                parsed_language.value,
                format_environment_variables(environment_variables),
                _blank_to_none(working_directory),
                _blank_to_none(executable),
                _iso8601z(_utc_now()),
            ),
        )
        return self.get(node_id, parsed_language)

    def record_run(self, node_id: str, language: ScriptLanguage | str, run_id: str) -> None:
        parsed_language = _as_language(language, "language")
        self._db.execute(
            """
            INSERT INTO node_bindings (node_id, language, last_run_id, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(node_id, language) DO UPDATE SET
                last_run_id=excluded.last_run_id,
                updated_at=excluded.updated_at
            """,
            (
                _as_non_empty_str(node_id, "node_id"),
                parsed_language.value,
                run_id,
                _iso8601z(_utc_now()),
            ),
        )

    def clear(self, node_id: str, language: ScriptLanguage | str) -> bool:
        deleted = self._db.execute(
            "DELETE FROM node_bindings WHERE node_id = ? AND language = ?",
            (_as_non_empty_str(node_id, "node_id"), _as_language(language, "language").value),
        )
        return deleted > 0


def _environment_params(environment: Environment) -> SQLParams:
    return (
        environment.env_id,
        environment.name,
        environment.python_executable,
        environment.python_version,
        1 if environment.managed else 0,
        environment.config.to_json(),
        environment.working_directory,
        environment.description,
        _iso8601z(environment.created_at),
        _iso8601z(environment.updated_at),
    )


def _environment_from_row(row: Mapping[str, RowValue]) -> Environment:
    config_payload = _load_json_object(
        _row_text(row, "config_json", "environments.config_json"), "environments.config_json"
    )
    return Environment(
        env_id=_row_text(row, "env_id", "environments.env_id"),
        name=_row_text(row, "name", "environments.name"),
        python_executable=_row_text(row, "python_executable", "environments.python_executable"),
        python_version=_row_text(row, "python_version", "environments.python_version"),
        managed=bool(row.get("managed")),
        config=EnvironmentConfig.from_dict(config_payload),
        working_directory=_row_optional_text(row, "working_directory"),
        description=_row_optional_text(row, "description"),
        created_at=_as_utc_datetime(row.get("created_at"), "environments.created_at"),
        updated_at=_as_utc_datetime(row.get("updated_at"), "environments.updated_at"),
    )


def _run_from_row(row: Mapping[str, RowValue]) -> Run:
    finished_at = row.get("finished_at")
    exit_code = row.get("exit_code")
    duration_ms = row.get("duration_ms")
    return Run(
        run_id=_row_text(row, "run_id", "runs.run_id"),
        node_id=_row_text(row, "node_id", "runs.node_id"),
        language=_as_language(_row_text(row, "language", "runs.language"), "runs.language"),
        status=_as_run_status(_row_text(row, "status", "runs.status"), "runs.status"),
        started_at=_as_utc_datetime(row.get("started_at"), "runs.started_at"),
        env_id=_row_optional_text(row, "env_id"),
        finished_at=(
            None if finished_at is None else _as_utc_datetime(finished_at, "runs.finished_at")
        ),
        exit_code=None if exit_code is None else _as_int(exit_code, "runs.exit_code"),
        error_message=_row_optional_text(row, "error_message"),
        duration_ms=(
            None if duration_ms is None else _as_non_negative_int(duration_ms, "runs.duration_ms")
        ),
    )


def _log_entry_from_row(row: Mapping[str, RowValue]) -> LogEntry:
    return LogEntry(
        run_id=_row_text(row, "run_id", "run_logs.run_id"),
        timestamp=_as_utc_datetime(row.get("timestamp"), "run_logs.timestamp"),
        level=_as_log_level(_row_text(row, "level", "run_logs.level"), "run_logs.level"),
        message=_row_text(row, "message", "run_logs.message"),
        sequence=_as_non_negative_int(row.get("log_id"), "run_logs.log_id"),
    )


def _binding_from_row(row: Mapping[str, RowValue]) -> NodeBinding:
    updated_at = row.get("updated_at")
    return NodeBinding(
        node_id=_row_text(row, "node_id", "node_bindings.node_id"),
        language=_as_language(
            _row_text(row, "language", "node_bindings.language"), "node_bindings.language"
        ),
        env_id=_row_optional_text(row, "env_id"),
        auto_detect=bool(row.get("auto_detect")),
        last_run_id=_row_optional_text(row, "last_run_id"),
        environment_variables=parse_environment_variables(
            row.get("env_vars_json"), "node_bindings.env_vars_json"
        ),
        working_directory=_row_optional_text(row, "working_directory"),
        executable=_row_optional_text(row, "executable"),
        updated_at=None if updated_at is None else _as_utc_datetime(updated_at, "node_bindings.updated_at"),
    )


def _row_text(row: Mapping[str, RowValue], key: str, path: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected text value")
    return value


def _row_optional_text(row: Mapping[str, RowValue], key: str) -> str | None:
    value = row.get(key)
    if value is None:
        return None
    return str(value)


def _blank_to_none(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


def _load_json_object(payload: str, path: str) -> dict[str, object]:
    try:
        loaded = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(loaded, dict):
        raise ValueError(f"{path}: JSON root must be object")
    out: dict[str, object] = {}
    for key, value in loaded.items():
        if not isinstance(key, str):
            raise ValueError(f"{path}: key must be text")
        out[key] = value
    return out


def _as_non_empty_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string")
    parsed = value.strip()
    if not parsed:
        raise ValueError(f"{path}: must not be empty")
    return parsed


def _as_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{path}: expected integer")
    return value


def _as_non_negative_int(value: object, path: str) -> int:
    parsed = _as_int(value, path)
    if parsed < 0:
        raise ValueError(f"{path}: must be >= 0")
    return parsed


def _as_utc_datetime(value: object, path: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"{path}: invalid ISO-8601 datetime ({exc})") from exc
    else:
        raise ValueError(f"{path}: expected datetime or ISO-8601 string")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        raise ValueError(f"{path}: datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _iso8601z(value: datetime) -> str:
    return (
        _as_utc_datetime(value, "datetime")
        .isoformat(timespec="microseconds")
        .replace("+00:00", "Z")
    )


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _as_run_status(value: RunStatus | str, path: str) -> RunStatus:
    if isinstance(value, RunStatus):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected run status string")
    try:
        return RunStatus(value)
    except ValueError as exc:
        allowed = ", ".join(sorted(item.value for item in RunStatus))
        raise ValueError(f"{path}: invalid run status {value!r}; allowed: {allowed}") from exc


def _as_language(value: ScriptLanguage | str, path: str) -> ScriptLanguage:
    if isinstance(value, ScriptLanguage):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected language string")
    try:
        return ScriptLanguage(value)
    except ValueError as exc:
        allowed = ", ".join(sorted(item.value for item in ScriptLanguage))
        raise ValueError(f"{path}: invalid language {value!r}; allowed: {allowed}") from exc


def _as_log_level(value: LogLevel | str, path: str) -> LogLevel:
    if isinstance(value, LogLevel):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected log level string")
    try:
        return LogLevel(value)
    except ValueError as exc:
        allowed = ", ".join(sorted(item.value for item in LogLevel))
        raise ValueError(f"{path}: invalid log level {value!r}; allowed: {allowed}") from exc


__all__ = [
    "EnvironmentRepo",
    "NodeBindingRepo",
    "RunLogRepo",
    "RunRepo",
]
