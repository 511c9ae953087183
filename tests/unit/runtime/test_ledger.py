from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from docforge_exec.domain.models import LogLevel, RunStatus, ScriptLanguage
from docforge_exec.observability.events import LogEvent, StatusEvent
from docforge_exec.runtime.errors import RunNotFoundError

if TYPE_CHECKING:
    from docforge_exec.runtime.ledger import RunLedger


def test_start_run_persists_running_record(ledger: RunLedger) -> None:
    run = ledger.start_run("node-1", "shell")

    assert run.status is RunStatus.RUNNING
    assert run.language is ScriptLanguage.SHELL
    assert run.env_id is None
    assert run.finished_at is None
    assert ledger.get_run(run.run_id) == run


def test_append_log_publishes_in_sequence_order(ledger: RunLedger) -> None:
    run = ledger.start_run("node-1", ScriptLanguage.SHELL)
    received: list[LogEvent] = []
    subscription = ledger.feed.subscribe(on_log=received.append, run_id=run.run_id)

    first = ledger.info(run.run_id, "one")
    second = ledger.error(run.run_id, "two")
    subscription.close()
    ledger.info(run.run_id, "three")

    assert first.sequence is not None and second.sequence is not None
    assert first.sequence < second.sequence
    assert [(event.entry.level, event.entry.message) for event in received] == [
        (LogLevel.INFO, "one"),
        (LogLevel.ERROR, "two"),
    ]
    assert [entry.message for entry in ledger.get_run_logs(run.run_id)] == ["one", "two", "three"]
    assert [entry.message for entry in ledger.get_run_logs(run.run_id, after_sequence=first.sequence)] == [
        "two",
        "three",
    ]


def test_finalize_records_outcome_and_duration(ledger: RunLedger) -> None:
    run = ledger.start_run("node-1", "shell")
    statuses: list[StatusEvent] = []
    ledger.feed.subscribe(on_status=statuses.append)

    finalized = ledger.finalize_run(
        run.run_id,
        RunStatus.FAILED,
        exit_code=3,
        error_message="Process exited with code 3.",
        finished_at=run.started_at + timedelta(milliseconds=1500),
    )

    assert finalized is not None
    assert finalized.status is RunStatus.FAILED
    assert finalized.exit_code == 3
    assert finalized.duration_ms == 1500
    assert finalized.error_message == "Process exited with code 3."
    assert statuses == [
        StatusEvent(
            run_id=run.run_id,
            status=RunStatus.FAILED,
            exit_code=3,
            error_message="Process exited with code 3.",
        )
    ]


def test_finalize_is_idempotent(ledger: RunLedger) -> None:
    run = ledger.start_run("node-1", "shell")
    statuses: list[StatusEvent] = []
    ledger.feed.subscribe(on_status=statuses.append)

    assert ledger.finalize_run(run.run_id, "succeeded", exit_code=0) is not None
    assert ledger.finalize_run(run.run_id, "failed", exit_code=1) is None

    stored = ledger.require_run(run.run_id)
    assert stored.status is RunStatus.SUCCEEDED
    assert stored.exit_code == 0
    assert len(statuses) == 1


def test_finalize_clamps_clock_skew_to_zero(ledger: RunLedger) -> None:
    run = ledger.start_run("node-1", "shell")
    finalized = ledger.finalize_run(
        run.run_id, RunStatus.SUCCEEDED, exit_code=0, finished_at=run.started_at - timedelta(seconds=5)
    )
    assert finalized is not None
    assert finalized.duration_ms == 0


def test_unknown_run(ledger: RunLedger) -> None:
    missing = "run-01ARZ3NDEKTSV4RRFFQ69G5FAV"
    with pytest.raises(RunNotFoundError, match=f"Run not found: {missing}"):
        ledger.finalize_run(missing, RunStatus.FAILED)
    with pytest.raises(RunNotFoundError):
        ledger.require_run(missing)
    assert ledger.get_run(missing) is None


def test_failing_subscriber_does_not_break_persistence(ledger: RunLedger) -> None:
    run = ledger.start_run("node-1", "shell")
    delivered: list[str] = []

    def explode(event: LogEvent) -> None:
        raise RuntimeError("renderer gone")

    ledger.feed.subscribe(on_log=explode)
    ledger.feed.subscribe(on_log=lambda event: delivered.append(event.entry.message))

    ledger.info(run.run_id, "still stored")

    assert delivered == ["still stored"]
    assert [entry.message for entry in ledger.get_run_logs(run.run_id)] == ["still stored"]
    errors = ledger.feed.logs.dispatch_errors()
    assert errors[-1].target == "explode"
    assert errors[-1].stage == "logs.subscriber"


def test_subscriber_may_append_from_callback(ledger: RunLedger) -> None:
    run = ledger.start_run("node-1", "shell")

    def echo(event: LogEvent) -> None:
        if event.entry.message == "ping":
            ledger.info(run.run_id, "pong")

    ledger.feed.subscribe(on_log=echo, run_id=run.run_id)
    ledger.info(run.run_id, "ping")

    assert [entry.message for entry in ledger.get_run_logs(run.run_id)] == ["ping", "pong"]


def test_history_is_newest_first_and_filtered(ledger: RunLedger) -> None:
    older = ledger.start_run("node-1", "shell")
    newer = ledger.start_run("node-1", "shell", started_at=older.started_at + timedelta(seconds=1))
    ledger.start_run("node-1", "powershell")
    ledger.start_run("node-2", "shell")

    history = ledger.get_runs_for_node("node-1", language="shell")
    assert [run.run_id for run in history] == [newer.run_id, older.run_id]
    assert len(ledger.get_runs_for_node("node-1")) == 3
    assert [run.run_id for run in ledger.get_runs_for_node("node-1", language="shell", limit=1)] == [
        newer.run_id
    ]
