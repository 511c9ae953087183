"""Pure mapping from (language, script path, platform) to an executable and argv.

Nothing in this module touches the filesystem or spawns processes; all platform
branching for script invocation lives here so it can be tested in isolation.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from docforge_exec.domain.models import ExecutionMode, ScriptLanguage

WINDOWS_PLATFORM: Final[str] = "win32"
POSIX_FALLBACK_SHELL: Final[str] = "/bin/sh"
WINDOWS_SHELL: Final[str] = "bash"
WINDOWS_POWERSHELL: Final[str] = "powershell.exe"
POSIX_POWERSHELL: Final[str] = "pwsh"
WINDOWS_TERMINAL: Final[str] = "wt.exe"

# Isolated mode ignores PYTHON* variables, so unbuffered output and UTF-8 stdio are set by flag.
_PYTHON_FLAGS: Final[tuple[str, ...]] = ("-I", "-u", "-X", "utf8")
_CMD_EXECUTABLE_RE: Final[re.Pattern[str]] = re.compile(r"(^|[\\/])cmd(\.exe)?$")
_POWERSHELL_SYNTAX_CHECK: Final[str] = (
    "Set-StrictMode -Version Latest; try { "
    "[ScriptBlock]::Create((Get-Content -LiteralPath '{path}' -Raw)) | Out-Null; "
    "Write-Output 'Syntax OK'; exit 0 } catch { Write-Error $_.Exception.Message; exit 1 }"
)


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Resolved invocation: ``command`` is the executable, ``args`` its arguments."""

    command: str
    args: tuple[str, ...]

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


def is_cmd_executable(executable: str) -> bool:
    normalized = executable.strip().lower()
    return normalized.endswith("cmd.exe") or _CMD_EXECUTABLE_RE.search(normalized) is not None


def default_executable(
    language: ScriptLanguage,
    *,
    platform: str,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Platform default for shell and PowerShell; Python has no ambient default."""
    if language is ScriptLanguage.SHELL:
        if platform == WINDOWS_PLATFORM:
            return WINDOWS_SHELL
        configured = (environ or {}).get("SHELL", "").strip()
        return configured or POSIX_FALLBACK_SHELL
    if language is ScriptLanguage.POWERSHELL:
        return WINDOWS_POWERSHELL if platform == WINDOWS_PLATFORM else POSIX_POWERSHELL
    raise ValueError("python scripts run with an environment interpreter; no default executable")


def supports_test_mode(language: ScriptLanguage, executable: str | None = None) -> bool:
    """Whether a syntax-only check exists for this language/executable pairing."""
    if language is ScriptLanguage.SHELL:
        return executable is None or not is_cmd_executable(executable)
    return True


def resolve_command(
    language: ScriptLanguage | str,
    script_path: str,
    *,
    platform: str,
    environ: Mapping[str, str] | None = None,
    python_executable: str | None = None,
    executable: str | None = None,
    mode: ExecutionMode | str = ExecutionMode.RUN,
) -> CommandSpec:
    """Build the invocation for ``script_path``.

    ``executable`` overrides the platform default for shell and PowerShell; for
    Python the environment's ``python_executable`` is required.
    """
    parsed_language = ScriptLanguage(language)
    parsed_mode = ExecutionMode(mode)
    if not script_path:
        raise ValueError("script_path must be non-empty")

    if parsed_language is ScriptLanguage.PYTHON:
        if not python_executable:
            raise ValueError("python runs require an interpreter executable")
        if parsed_mode is ExecutionMode.TEST:
            return CommandSpec(python_executable, (*_PYTHON_FLAGS, "-m", "py_compile", script_path))
        return CommandSpec(python_executable, (*_PYTHON_FLAGS, script_path))

    resolved = executable.strip() if executable and executable.strip() else None
    command = resolved or default_executable(parsed_language, platform=platform, environ=environ)

    if parsed_language is ScriptLanguage.SHELL:
        if is_cmd_executable(command):
            if parsed_mode is ExecutionMode.TEST:
                raise ValueError(f"syntax check is not supported for {command}")
            return CommandSpec(command, ("/c", script_path))
        if parsed_mode is ExecutionMode.TEST:
            return CommandSpec(command, ("-n", script_path))
        return CommandSpec(command, (script_path,))

    flags: tuple[str, ...] = ("-NoLogo", "-NoProfile")
    if platform == WINDOWS_PLATFORM and "powershell" in command.lower():
        flags = (*flags, "-ExecutionPolicy", "Bypass")
    if parsed_mode is ExecutionMode.TEST:
        check = _POWERSHELL_SYNTAX_CHECK.replace("{path}", script_path.replace("'", "''"))
        return CommandSpec(command, (*flags, "-Command", check))
    return CommandSpec(command, (*flags, "-File", script_path))


def wrap_in_terminal(spec: CommandSpec, *, title: str) -> CommandSpec:
    """Wrap an invocation so it opens in a new Windows Terminal window."""
    return CommandSpec(WINDOWS_TERMINAL, ("-w", "_new", "--title", title, "--", *spec.argv))


__all__ = [
    "CommandSpec",
    "POSIX_FALLBACK_SHELL",
    "POSIX_POWERSHELL",
    "WINDOWS_PLATFORM",
    "WINDOWS_POWERSHELL",
    "WINDOWS_SHELL",
    "WINDOWS_TERMINAL",
    "default_executable",
    "is_cmd_executable",
    "resolve_command",
    "supports_test_mode",
    "wrap_in_terminal",
]
