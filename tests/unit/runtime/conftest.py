"""Fixtures for runtime tests."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from docforge_exec.domain.models import InterpreterInfo
from docforge_exec.persistence.repositories import EnvironmentRepo, RunLogRepo, RunRepo
from docforge_exec.persistence.state_db import StateDB
from docforge_exec.runtime.environments import EnvironmentStore
from docforge_exec.runtime.launcher import ProcessLauncher
from docforge_exec.runtime.ledger import RunLedger

from . import FakeRunner, write_executable

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def state_db(tmp_path: Path) -> StateDB:
    return StateDB(tmp_path / "state" / "docforge.sqlite3")


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def environments_root(tmp_path: Path) -> Path:
    return tmp_path / "python-envs"


@pytest.fixture()
def store(state_db: StateDB, environments_root: Path, fake_runner: FakeRunner) -> EnvironmentStore:
    return EnvironmentStore(
        EnvironmentRepo(state_db),
        environments_root=environments_root,
        runner=fake_runner,
        base_environ={"PATH": "/usr/bin", "HOME": "/home/test"},
    )


@pytest.fixture()
def base_interpreter(tmp_path: Path) -> str:
    return str(write_executable(tmp_path / "base" / "bin" / "python3"))


@pytest.fixture()
def interpreters(base_interpreter: str) -> list[InterpreterInfo]:
    return [
        InterpreterInfo("/opt/py39/bin/python3", "3.9.18", "Python 3.9.18", is_default=True),
        InterpreterInfo(base_interpreter, "3.11.4", "Python 3.11.4"),
    ]


@pytest.fixture()
def ledger(state_db: StateDB) -> RunLedger:
    return RunLedger(RunRepo(state_db), RunLogRepo(state_db))


@pytest.fixture()
def launcher(ledger: RunLedger, tmp_path: Path) -> ProcessLauncher:
    temp_root = tmp_path / "scripts"
    temp_root.mkdir()
    return ProcessLauncher(
        ledger,
        temp_root=temp_root,
        cancel_grace_seconds=2.0,
        base_environ={"PATH": os.environ.get("PATH", "/usr/bin:/bin"), "LANG": "C.UTF-8"},
    )
