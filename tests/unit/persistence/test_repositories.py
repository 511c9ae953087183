"""Repository behavior tests for environments, runs, run logs and node bindings."""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from docforge_exec.domain.models import (
    EnvironmentConfig,
    LogLevel,
    PackageSpec,
    RunStatus,
    ScriptLanguage,
)
from docforge_exec.persistence.repositories import (
    EnvironmentRepo,
    NodeBindingRepo,
    RunLogRepo,
    RunRepo,
)
from docforge_exec.persistence.state_db import StateDB

from . import fixed_now, make_environment, make_run

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def db(tmp_path: Path) -> StateDB:
    return StateDB(tmp_path / "state" / "docforge.sqlite3")


def test_environment_crud_round_trip(db: StateDB) -> None:
    repo = EnvironmentRepo(db)
    environment = make_environment(
        1,
        name="analysis",
        packages=(PackageSpec("requests", "2.31.0"), PackageSpec("numpy")),
        environment_variables={"MODE": "test"},
    )
    repo.add(environment)

    loaded = repo.get(environment.env_id)
    assert loaded == environment
    assert loaded is not None and loaded.config.requirements() == ("requests==2.31.0", "numpy")

    updated = replace(
        environment,
        name="analysis-2",
        description="renamed",
        updated_at=fixed_now(60),
        config=environment.config.merged(environment_variables={"MODE": "prod"}),
    )
    repo.save(updated)
    reloaded = repo.get(environment.env_id)
    assert reloaded is not None
    assert reloaded.name == "analysis-2"
    assert reloaded.description == "renamed"
    assert reloaded.environment_variables == {"MODE": "prod"}
    assert reloaded.created_at == environment.created_at

    assert repo.delete(environment.env_id) is True
    assert repo.delete(environment.env_id) is False
    assert repo.get(environment.env_id) is None


def test_environment_save_unknown_raises(db: StateDB) -> None:
    repo = EnvironmentRepo(db)
    with pytest.raises(ValueError, match="env_id not found"):
        repo.save(make_environment(9))


def test_environment_list_orders_by_name(db: StateDB) -> None:
    repo = EnvironmentRepo(db)
    repo.add(make_environment(1, name="zeta"))
    repo.add(make_environment(2, name="alpha"))
    repo.add(make_environment(3, name="mid", managed=False))

    assert [env.name for env in repo.list()] == ["alpha", "mid", "zeta"]
    assert [env.name for env in repo.list(limit=1, offset=1)] == ["mid"]
    with pytest.raises(ValueError, match="limit must be"):
        repo.list(limit=0)


def test_environment_config_column_survives_round_trip(db: StateDB) -> None:
    repo = EnvironmentRepo(db)
    environment = replace(
        make_environment(4),
        config=EnvironmentConfig(
            packages=(PackageSpec("pandas", ">=2,<3"),),
            environment_variables={"A": "1", "B": "two"},
            base_interpreter="/opt/python/bin/python3.12",
        ),
    )
    repo.add(environment)

    loaded = repo.get(environment.env_id)
    assert loaded is not None
    assert loaded.config == environment.config


def test_run_lifecycle_is_one_way(db: StateDB) -> None:
    runs = RunRepo(db)
    run = runs.add(make_run(1))
    assert runs.get(run.run_id) == run

    assert runs.finalize(
        run.run_id,
        RunStatus.FAILED,
        finished_at=fixed_now(3),
        exit_code=2,
        error_message="boom",
        duration_ms=3000,
    )
    assert not runs.finalize(run.run_id, RunStatus.SUCCEEDED, finished_at=fixed_now(4))

    stored = runs.get(run.run_id)
    assert stored is not None
    assert stored.status is RunStatus.FAILED
    assert stored.exit_code == 2
    assert stored.error_message == "boom"
    assert stored.duration_ms == 3000
    assert stored.finished_at == fixed_now(3)


def test_run_add_and_finalize_validate_status(db: StateDB) -> None:
    runs = RunRepo(db)
    finished = replace(make_run(1), status=RunStatus.SUCCEEDED)
    with pytest.raises(ValueError, match="new runs must be running"):
        runs.add(finished)

    run = runs.add(make_run(2))
    with pytest.raises(ValueError, match="terminal status"):
        runs.finalize(run.run_id, RunStatus.RUNNING, finished_at=fixed_now(3))
    with pytest.raises(ValueError, match="duration_ms"):
        runs.finalize(run.run_id, RunStatus.FAILED, finished_at=fixed_now(3), duration_ms=-1)


def test_runs_for_node_newest_first_and_filtered(db: StateDB) -> None:
    runs = RunRepo(db)
    first = runs.add(make_run(1, language=ScriptLanguage.PYTHON))
    second = runs.add(make_run(2, language=ScriptLanguage.SHELL))
    third = runs.add(make_run(3, language=ScriptLanguage.PYTHON))
    runs.add(make_run(4, node_id="node-2"))

    assert [run.run_id for run in runs.list_for_node("node-1")] == [
        third.run_id,
        second.run_id,
        first.run_id,
    ]
    assert [run.run_id for run in runs.list_for_node("node-1", language="python")] == [
        third.run_id,
        first.run_id,
    ]
    assert [run.run_id for run in runs.list_for_node("node-1", limit=1)] == [third.run_id]
    with pytest.raises(ValueError, match="invalid language"):
        runs.list_for_node("node-1", language="ruby")


def test_run_env_reference_is_cleared_when_environment_deleted(db: StateDB) -> None:
    environments = EnvironmentRepo(db)
    runs = RunRepo(db)
    environment = environments.add(make_environment(1))
    run = runs.add(make_run(1, env_id=environment.env_id))

    environments.delete(environment.env_id)

    stored = runs.get(run.run_id)
    assert stored is not None
    assert stored.env_id is None


def test_log_append_preserves_order_and_sequence(db: StateDB) -> None:
    runs = RunRepo(db)
    logs = RunLogRepo(db)
    run = runs.add(make_run(1))
    other = runs.add(make_run(2))

    first = logs.append(run.run_id, LogLevel.INFO, "line one")
    logs.append(other.run_id, "INFO", "other run")
    second = logs.append(run.run_id, "ERROR", "line two", timestamp=fixed_now(9))

    entries = logs.list_for_run(run.run_id)
    assert [(entry.level, entry.message) for entry in entries] == [
        (LogLevel.INFO, "line one"),
        (LogLevel.ERROR, "line two"),
    ]
    assert first.sequence is not None and second.sequence is not None
    assert first.sequence < second.sequence
    assert entries[1].timestamp == fixed_now(9)

    tail = logs.list_for_run(run.run_id, after_sequence=first.sequence)
    assert [entry.message for entry in tail] == ["line two"]
    with pytest.raises(ValueError, match="after_sequence"):
        logs.list_for_run(run.run_id, after_sequence=-1)


def test_concurrent_log_appends_keep_every_line(db: StateDB) -> None:
    runs = RunRepo(db)
    logs = RunLogRepo(db)
    run = runs.add(make_run(1))

    def _writer(level: str) -> None:
        for index in range(25):
            logs.append(run.run_id, level, f"{level}-{index}")

    threads = [threading.Thread(target=_writer, args=(level,)) for level in ("INFO", "ERROR")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    entries = logs.list_for_run(run.run_id)
    assert len(entries) == 50
    for level in ("INFO", "ERROR"):
        assert [entry.message for entry in entries if entry.level.value == level] == [
            f"{level}-{index}" for index in range(25)
        ]


def test_binding_defaults_and_upserts(db: StateDB) -> None:
    bindings = NodeBindingRepo(db)

    default = bindings.get("node-1")
    assert default.auto_detect is True
    assert default.env_id is None
    assert default.updated_at is None

    pinned = bindings.set_environment("node-1", "python", env_id="env-x", auto_detect=False)
    assert pinned.pinned_env_id == "env-x"
    assert pinned.updated_at is not None

    bindings.record_run("node-1", "python", "run-last")
    after_run = bindings.get("node-1", ScriptLanguage.PYTHON)
    assert after_run.last_run_id == "run-last"
    assert after_run.env_id == "env-x"
    assert after_run.auto_detect is False

    shell = bindings.get("node-1", ScriptLanguage.SHELL)
    assert shell.last_run_id is None


def test_script_settings_are_per_language(db: StateDB) -> None:
    bindings = NodeBindingRepo(db)
    bindings.record_run("node-1", "shell", "run-a")

    stored = bindings.set_script_settings(
        "node-1",
        ScriptLanguage.SHELL,
        environment_variables={"GREETING": "hi"},
        working_directory="  ",
        executable="/bin/bash",
    )
    assert stored.environment_variables == {"GREETING": "hi"}
    assert stored.working_directory is None
    assert stored.executable == "/bin/bash"
    assert stored.last_run_id == "run-a"

    powershell = bindings.get("node-1", ScriptLanguage.POWERSHELL)
    assert powershell.environment_variables == {}

    assert bindings.clear("node-1", "shell") is True
    assert bindings.clear("node-1", "shell") is False
    assert bindings.get("node-1", "shell").executable is None


def test_binding_rejects_blank_node(db: StateDB) -> None:
    bindings = NodeBindingRepo(db)
    with pytest.raises(ValueError, match="node_id"):
        bindings.record_run("  ", "python", "run-x")
