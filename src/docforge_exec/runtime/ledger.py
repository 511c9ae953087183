"""
docforge-exec — module skeleton

File: src/docforge_exec/runtime/ledger.py
Last updated: 2026-10-17

Purpose
- Durable run history: run records, their log lines, and the typed event feed
  that re-broadcasts both to subscribers.

Functional requirements
- Subscribers observe a run's log events in storage order.
- A status event is published only for the finalization that actually moved the
  run out of ``running``; repeated finalization has no observable effect.

Non-functional requirements
- Appends and their publication happen under one lock so concurrent reader
  threads cannot reorder events relative to storage.
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any

import structlog

from docforge_exec.constants import DEFAULT_RUN_HISTORY_LIMIT
from docforge_exec.domain.ids import generate_run_id
from docforge_exec.domain.models import LogEntry, LogLevel, Run, RunStatus, ScriptLanguage
from docforge_exec.observability.events import LogEvent, RunEventFeed, StatusEvent
from docforge_exec.persistence.repositories import RunLogRepo, RunRepo
from docforge_exec.runtime.errors import EnvironmentNotFoundError, RunNotFoundError

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017


class RunLedger:
    """Persists runs and log lines and publishes them on a ``RunEventFeed``."""

    def __init__(
        self,
        runs: RunRepo,
        logs: RunLogRepo,
        *,
        feed: RunEventFeed | None = None,
        logger: Any | None = None,
    ) -> None:
        self._runs = runs
        self._logs = logs
        self._feed = RunEventFeed() if feed is None else feed
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        # Reentrant so a subscriber may append a log line from its callback.
        self._lock = threading.RLock()

    @property
    def feed(self) -> RunEventFeed:
        return self._feed

    def start_run(
        self,
        node_id: str,
        language: ScriptLanguage | str,
        *,
        env_id: str | None = None,
        started_at: datetime | None = None,
    ) -> Run:
        run = Run(
            run_id=generate_run_id(),
            node_id=node_id,
            language=ScriptLanguage(language),
            status=RunStatus.RUNNING,
            started_at=_utc_now() if started_at is None else started_at,
            env_id=env_id,
        )
        try:
            self._runs.add(run)
        except sqlite3.IntegrityError as exc:
            # The only reference a new run carries is its environment.
            if env_id is None:
                raise
            raise EnvironmentNotFoundError(env_id) from exc
        self._logger.info(
            "run_started", run_id=run.run_id, node_id=node_id, language=run.language.value
        )
        return run

    def append_log(self, run_id: str, level: LogLevel | str, message: str) -> LogEntry:
        with self._lock:
            entry = self._logs.append(run_id, level, message)
            errors = self._feed.logs.publish(LogEvent(run_id=run_id, entry=entry))
        for error in errors:
            self._logger.warning(
                "subscriber_failed", run_id=run_id, target=error.target, error=error.message
            )
        return entry

    def info(self, run_id: str, message: str) -> LogEntry:
        return self.append_log(run_id, LogLevel.INFO, message)

    def error(self, run_id: str, message: str) -> LogEntry:
        return self.append_log(run_id, LogLevel.ERROR, message)

    def finalize_run(
        self,
        run_id: str,
        status: RunStatus | str,
        *,
        exit_code: int | None = None,
        error_message: str | None = None,
        finished_at: datetime | None = None,
    ) -> Run | None:
        """Move ``run_id`` to a terminal status.

        Returns the finalized run, or ``None`` when it was already terminal (in which
        case nothing is written and no event is published).
        """
        finished = _utc_now() if finished_at is None else finished_at
        with self._lock:
            current = self._runs.get(run_id)
            if current is None:
                raise RunNotFoundError(run_id)
            if current.is_terminal:
                return None
            duration_ms = max(0, int((finished - current.started_at).total_seconds() * 1000))
            parsed_status = RunStatus(status)
            changed = self._runs.finalize(
                run_id,
                parsed_status,
                finished_at=finished,
                exit_code=exit_code,
                error_message=error_message,
                duration_ms=duration_ms,
            )
            if not changed:
                return None
            errors = self._feed.statuses.publish(
                StatusEvent(
                    run_id=run_id,
                    status=parsed_status,
                    exit_code=exit_code,
                    error_message=error_message,
                )
            )

        for error in errors:
            self._logger.warning(
                "subscriber_failed", run_id=run_id, target=error.target, error=error.message
            )
        self._logger.info(
            "run_finalized",
            run_id=run_id,
            status=parsed_status.value,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )
        return self._runs.get(run_id)

    def get_run(self, run_id: str) -> Run | None:
        return self._runs.get(run_id)

    def require_run(self, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def get_runs_for_node(
        self,
        node_id: str,
        *,
        language: ScriptLanguage | str | None = None,
        limit: int = DEFAULT_RUN_HISTORY_LIMIT,
    ) -> list[Run]:
        return self._runs.list_for_node(node_id, language=language, limit=limit)

    def get_run_logs(self, run_id: str, *, after_sequence: int = 0) -> list[LogEntry]:
        return self._logs.list_for_run(run_id, after_sequence=after_sequence)


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["RunLedger"]
