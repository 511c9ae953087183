"""Shared fakes for runtime tests."""

from __future__ import annotations

import stat
import sys
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from docforge_exec.runtime.environments import CommandExecutionResult, managed_python_path

posix_only = pytest.mark.skipif(
    sys.platform == "win32", reason="uses /bin/sh and POSIX process semantics"
)


@dataclass
class FakeRunner:
    """Offline stand-in for ``python -m venv``, ``pip install`` and ``--version``.

    ``venv`` writes an executable interpreter file where a real venv would put it,
    so the store's executable check passes without spawning anything.
    """

    version_output: str = "Python 3.11.4"
    venv_returncode: int = 0
    venv_stderr: str = ""
    pip_returncode: int = 0
    pip_stderr: str = ""
    create_interpreter: bool = True
    calls: list[tuple[str, ...]] = field(default_factory=list)
    envs: list[Mapping[str, str] | None] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        timeout_seconds: float,
    ) -> CommandExecutionResult:
        argv = tuple(command)
        with self._lock:
            self.calls.append(argv)
            self.envs.append(env)

        if argv[1:3] == ("-m", "venv"):
            env_root = Path(argv[3])
            env_root.mkdir(parents=True, exist_ok=True)
            (env_root / "pyvenv.cfg").write_text("home = /usr/bin\n", encoding="utf-8")
            if self.venv_returncode == 0 and self.create_interpreter:
                write_executable(managed_python_path(env_root))
            return self._result(argv, self.venv_returncode, stderr=self.venv_stderr)
        if argv[1:4] == ("-m", "pip", "install"):
            return self._result(argv, self.pip_returncode, stderr=self.pip_stderr)
        if argv[1:] == ("--version",):
            return self._result(argv, 0, stdout=self.version_output)
        return self._result(argv, 0)

    def pip_calls(self) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[1:4] == ("-m", "pip", "install")]

    def venv_calls(self) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[1:3] == ("-m", "venv")]

    @staticmethod
    def _result(
        argv: tuple[str, ...], returncode: int, *, stdout: str = "", stderr: str = ""
    ) -> CommandExecutionResult:
        return CommandExecutionResult(
            command=argv, cwd=None, returncode=returncode, stdout=stdout, stderr=stderr
        )


def write_executable(path: Path, body: str = "#!/bin/sh\nexit 0\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


__all__ = ["FakeRunner", "posix_only", "write_executable"]
