"""Python interpreter discovery for the host.

Sources
- The Windows ``py`` launcher (``py -0p``), which lists registered installations.
- Every directory on ``PATH``, searched for the platform's interpreter names.

Every candidate is confirmed by running ``<exe> --version``. Discovery never raises:
an unreachable launcher or a silent binary simply contributes nothing.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
import sys
from collections.abc import Callable
from dataclasses import replace
from typing import Final

import structlog

from docforge_exec.domain.models import InterpreterInfo

DEFAULT_PROBE_TIMEOUT_SECONDS: Final[float] = 5.0

_VERSION_RE: Final[re.Pattern[str]] = re.compile(r"Python\s+([0-9]+\.[0-9]+\.[0-9]+)", re.IGNORECASE)
# Matches both ` -V:3.12 *   C:\...\python.exe` and ` -3.11-64 *  C:\...\python.exe`.
_PY_LAUNCHER_LINE_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*-(?:V:)?(?P<version>[0-9]+(?:\.[0-9]+)*)(?:-[0-9A-Za-z]+)?\s*(?P<default>\*)?\s+(?P<path>\S.*?)\s*$"
)
_WINDOWS_CANDIDATES: Final[tuple[str, ...]] = ("python.exe", "python3.exe")
_POSIX_CANDIDATES: Final[tuple[str, ...]] = ("python3", "python")

VersionProbe = Callable[[str], "str | None"]

_logger = structlog.get_logger(__name__)


def is_windows(platform: str) -> bool:
    return platform == "win32"


def parse_python_version(text: str | None) -> str | None:
    """Extract ``X.Y.Z`` from ``Python X.Y.Z`` style output."""
    if not text:
        return None
    match = _VERSION_RE.search(text)
    return None if match is None else match.group(1)


def probe_python_version(
    executable: str, *, timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS
) -> str | None:
    """Run ``executable --version``; ``None`` on timeout, missing binary or odd output.

    Older interpreters print the banner on stderr, so both streams are checked.
    """
    try:
        completed = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            check=False,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return None
    return parse_python_version(completed.stdout) or parse_python_version(completed.stderr)


def parse_py_launcher_output(output: str) -> list[InterpreterInfo]:
    interpreters: list[InterpreterInfo] = []
    for line in output.splitlines():
        match = _PY_LAUNCHER_LINE_RE.match(line)
        if match is None:
            continue
        version = match.group("version")
        interpreters.append(
            InterpreterInfo(
                path=match.group("path"),
                version=version,
                display_name=f"Python {version} (py launcher)",
                is_default=match.group("default") is not None,
            )
        )
    return interpreters


def detect_via_py_launcher(
    *,
    platform: str | None = None,
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> list[InterpreterInfo]:
    if not is_windows(sys.platform if platform is None else platform):
        return []
    launcher = shutil.which("py")
    if launcher is None:
        return []
    try:
        completed = subprocess.run(
            [launcher, "-0p"],
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            check=False,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as exc:
        _logger.debug("py_launcher_unavailable", error=str(exc))
        return []
    if completed.returncode != 0:
        _logger.debug("py_launcher_failed", returncode=completed.returncode)
        return []
    return parse_py_launcher_output(completed.stdout)


def detect_from_path(
    *,
    platform: str | None = None,
    path_env: str | None = None,
    version_probe: VersionProbe | None = None,
) -> list[InterpreterInfo]:
    resolved_platform = sys.platform if platform is None else platform
    search_path = os.environ.get("PATH", "") if path_env is None else path_env
    names = _WINDOWS_CANDIDATES if is_windows(resolved_platform) else _POSIX_CANDIDATES
    probe = probe_python_version if version_probe is None else version_probe

    candidates: list[str] = []
    seen: set[str] = set()
    for directory in search_path.split(os.pathsep):
        if not directory:
            continue
        for name in names:
            found = shutil.which(name, path=directory)
            if found is None:
                continue
            key = _path_key(found, resolved_platform)
            if key in seen:
                continue
            seen.add(key)
            candidates.append(found)

    interpreters: list[InterpreterInfo] = []
    for candidate in candidates:
        version = probe(candidate)
        if version is None:
            _logger.debug("interpreter_probe_failed", path=candidate)
            continue
        interpreters.append(
            InterpreterInfo(path=candidate, version=version, display_name=f"Python {version}")
        )
    return interpreters


def merge_interpreters(
    sources: list[list[InterpreterInfo]], *, platform: str | None = None
) -> list[InterpreterInfo]:
    """Dedupe by path (earlier sources win), sort by numeric version, ensure one default."""
    resolved_platform = sys.platform if platform is None else platform
    merged: dict[str, InterpreterInfo] = {}
    for source in sources:
        for interpreter in source:
            merged.setdefault(_path_key(interpreter.path, resolved_platform), interpreter)

    ordered = sorted(merged.values(), key=lambda item: (item.version_key, item.path))
    if ordered and not any(item.is_default for item in ordered):
        ordered[0] = replace(ordered[0], is_default=True)
    return ordered


def detect_interpreters(
    *,
    platform: str | None = None,
    path_env: str | None = None,
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> list[InterpreterInfo]:
    """Return every usable interpreter on the host; an empty list when none respond."""
    resolved_platform = sys.platform if platform is None else platform
    launcher = detect_via_py_launcher(platform=resolved_platform, timeout_seconds=timeout_seconds)
    from_path = detect_from_path(
        platform=resolved_platform,
        path_env=path_env,
        version_probe=lambda exe: probe_python_version(exe, timeout_seconds=timeout_seconds),
    )
    interpreters = merge_interpreters([launcher, from_path], platform=resolved_platform)
    _logger.info(
        "interpreters_detected",
        count=len(interpreters),
        versions=[item.version for item in interpreters],
    )
    return interpreters


def select_interpreter(
    interpreters: list[InterpreterInfo], target_version: str | None
) -> InterpreterInfo | None:
    """First interpreter whose version starts with ``target_version``, else the first one."""
    if not interpreters:
        return None
    if target_version:
        for interpreter in interpreters:
            if interpreter.version.startswith(target_version):
                return interpreter
    return interpreters[0]


def _path_key(path: str, platform: str) -> str:
    return path.lower() if is_windows(platform) else path


__all__ = [
    "DEFAULT_PROBE_TIMEOUT_SECONDS",
    "detect_from_path",
    "detect_interpreters",
    "detect_via_py_launcher",
    "is_windows",
    "merge_interpreters",
    "parse_py_launcher_output",
    "parse_python_version",
    "probe_python_version",
    "select_interpreter",
]
