"""Interpreter discovery tests; no real interpreter is spawned."""

from __future__ import annotations

import os
import stat
import subprocess
from typing import TYPE_CHECKING

import pytest

from docforge_exec.domain.models import InterpreterInfo
from docforge_exec.runtime import discovery

if TYPE_CHECKING:
    from pathlib import Path


def _make_executable(path: Path) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Python 3.11.4", "3.11.4"),
        ("python 3.12.0\n", "3.12.0"),
        ("Python 3.13.0rc1", "3.13.0"),
        ("Python 3", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_python_version(text: str | None, expected: str | None) -> None:
    assert discovery.parse_python_version(text) == expected


def test_parse_py_launcher_output_handles_both_line_shapes() -> None:
    output = (
        "Installed Pythons found by py Launcher for Windows\n"
        " -V:3.12 *        C:\\Program Files\\Python312\\python.exe\n"
        " -3.11-64         C:\\Python311\\python.exe\n"
        " -V:3.10          C:\\Users\\me\\AppData\\Local\\Programs\\Python\\Python310\\python.exe\n"
        "garbage line\n"
    )

    interpreters = discovery.parse_py_launcher_output(output)

    assert [(item.version, item.path, item.is_default) for item in interpreters] == [
        ("3.12", "C:\\Program Files\\Python312\\python.exe", True),
        ("3.11", "C:\\Python311\\python.exe", False),
        ("3.10", "C:\\Users\\me\\AppData\\Local\\Programs\\Python\\Python310\\python.exe", False),
    ]
    assert interpreters[0].display_name == "Python 3.12 (py launcher)"


def test_py_launcher_skipped_off_windows(monkeypatch: pytest.MonkeyPatch) -> None:
    def _unexpected(*args: object, **kwargs: object) -> None:
        raise AssertionError("py launcher must not be probed off Windows")

    monkeypatch.setattr(discovery.subprocess, "run", _unexpected)
    assert discovery.detect_via_py_launcher(platform="linux") == []


def test_py_launcher_on_windows(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[list[str]] = []

    def _fake_run(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        calls.append(argv)
        return subprocess.CompletedProcess(argv, 0, stdout=" -V:3.12 *  C:\\Py\\python.exe\n", stderr="")

    monkeypatch.setattr(discovery.shutil, "which", lambda name, path=None: "C:\\Windows\\py.exe")
    monkeypatch.setattr(discovery.subprocess, "run", _fake_run)

    interpreters = discovery.detect_via_py_launcher(platform="win32")
    assert calls == [["C:\\Windows\\py.exe", "-0p"]]
    assert [item.path for item in interpreters] == ["C:\\Py\\python.exe"]


def test_py_launcher_failures_yield_nothing(monkeypatch: pytest.MonkeyPatch) -> None:
    def _timeout(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise subprocess.TimeoutExpired(argv, 5)

    monkeypatch.setattr(discovery.shutil, "which", lambda name, path=None: "py")
    monkeypatch.setattr(discovery.subprocess, "run", _timeout)
    assert discovery.detect_via_py_launcher(platform="win32") == []

    monkeypatch.setattr(
        discovery.subprocess,
        "run",
        lambda argv, **kwargs: subprocess.CompletedProcess(argv, 1, stdout="", stderr="boom"),
    )
    assert discovery.detect_via_py_launcher(platform="win32") == []


def test_probe_reads_stderr_banner_and_swallows_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        discovery.subprocess,
        "run",
        lambda argv, **kwargs: subprocess.CompletedProcess(argv, 0, stdout="", stderr="Python 2.7.18"),
    )
    assert discovery.probe_python_version("/usr/bin/python2") == "2.7.18"

    def _missing(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(discovery.subprocess, "run", _missing)
    assert discovery.probe_python_version("/nope/python3") is None


@pytest.mark.skipif(os.name == "nt", reason="POSIX executable bits")
def test_detect_from_path_searches_every_directory(tmp_path: Path) -> None:
    first = _make_executable(tmp_path / "a" / "python3")
    second = _make_executable(tmp_path / "b" / "python")
    silent = _make_executable(tmp_path / "c" / "python3")
    (tmp_path / "d").mkdir()
    (tmp_path / "d" / "python3").write_text("not executable", encoding="utf-8")

    versions = {first: "3.11.4", second: "3.12.1"}
    path_env = os.pathsep.join(
        str(tmp_path / name) for name in ("a", "b", "", "c", "d", "a")
    )

    interpreters = discovery.detect_from_path(
        platform="linux", path_env=path_env, version_probe=versions.get
    )

    assert [(item.path, item.version) for item in interpreters] == [
        (first, "3.11.4"),
        (second, "3.12.1"),
    ]
    assert silent not in {item.path for item in interpreters}
    assert interpreters[0].display_name == "Python 3.11.4"


def test_merge_dedupes_sorts_and_marks_default() -> None:
    launcher = [InterpreterInfo("C:\\Py312\\python.exe", "3.12", "Python 3.12 (py launcher)")]
    from_path = [
        InterpreterInfo("c:\\py312\\PYTHON.EXE", "3.12.1", "Python 3.12.1"),
        InterpreterInfo("C:\\Py39\\python.exe", "3.9.18", "Python 3.9.18"),
    ]

    merged = discovery.merge_interpreters([launcher, from_path], platform="win32")

    assert [(item.path, item.is_default) for item in merged] == [
        ("C:\\Py39\\python.exe", True),
        ("C:\\Py312\\python.exe", False),
    ]


def test_merge_keeps_launcher_default() -> None:
    interpreters = [
        InterpreterInfo("/a", "3.10.0", "Python 3.10.0"),
        InterpreterInfo("/b", "3.12.0", "Python 3.12.0", is_default=True),
    ]
    merged = discovery.merge_interpreters([interpreters], platform="linux")
    assert [item.is_default for item in merged] == [False, True]
    assert discovery.merge_interpreters([], platform="linux") == []


def test_detect_interpreters_never_raises_when_nothing_found(tmp_path: Path) -> None:
    assert discovery.detect_interpreters(platform="linux", path_env=str(tmp_path / "empty")) == []


def test_select_interpreter_prefers_version_prefix() -> None:
    interpreters = [
        InterpreterInfo("/py39", "3.9.18", "Python 3.9.18", is_default=True),
        InterpreterInfo("/py311", "3.11.4", "Python 3.11.4"),
        InterpreterInfo("/py312", "3.12.1", "Python 3.12.1"),
    ]

    assert discovery.select_interpreter(interpreters, "3.11") == interpreters[1]
    assert discovery.select_interpreter(interpreters, "3.12.1") == interpreters[2]
    assert discovery.select_interpreter(interpreters, "2.7") == interpreters[0]
    assert discovery.select_interpreter(interpreters, None) == interpreters[0]
    assert discovery.select_interpreter([], "3.11") is None
