"""
docforge-exec — module skeleton

File: src/docforge_exec/runtime/launcher.py
Last updated: 2026-10-17

Purpose
- Spawn one OS process per run, stream its output into the run ledger, and
  finalize the run exactly once when the process ends, fails to start, or is
  cancelled.

What should be included in this file
- RunRequest: everything needed to launch a script.
- ProcessRegistry: launcher-owned map of live runs; an entry is removed exactly
  once, by the finalization that wins.
- ProcessLauncher: launch, cancel, wait, shutdown.

Functional requirements
- ``launch`` returns as soon as the child is started (or the run has already
  failed); completion is observed through the event feed or the ledger.
- Each pipe has its own reader thread; the watcher joins both readers before
  finalizing so the status event follows every log line.
- The temporary script directory is always removed after finalization; removal
  failures are logged only.

Non-functional requirements
- No process-wide state: every live resource is reachable from the registry.
"""

from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import IO, Any, Final

import structlog

from docforge_exec.constants import PYTHON_RUN_ENV, TEMP_SCRIPT_DIR_PREFIX
from docforge_exec.domain.ids import short_id
from docforge_exec.domain.models import (
    ConsoleMode,
    Environment,
    ExecutionMode,
    LogLevel,
    Run,
    RunStatus,
    ScriptLanguage,
    merge_environment_variables,
)
from docforge_exec.observability.logging import correlation_scope
from docforge_exec.runtime.commands import CommandSpec, resolve_command, wrap_in_terminal
from docforge_exec.runtime.discovery import is_windows
from docforge_exec.runtime.errors import RunNotFoundError
from docforge_exec.runtime.ledger import RunLedger
from docforge_exec.utils.fs import create_script_directory, safe_delete, write_script_file

DEFAULT_CANCEL_GRACE_SECONDS: Final[float] = 5.0

CANCELLED_MESSAGE: Final[str] = "Run cancelled by user."
SUCCESS_MESSAGE: Final[str] = "Execution completed successfully."
TERMINAL_UNSUPPORTED_MESSAGE: Final[str] = "Windows Terminal execution is only available on Windows."
TERMINAL_OPENED_MESSAGE: Final[str] = "Windows Terminal window opened. Close it to finish the run."

_SCRIPT_FILES: Final[dict[ScriptLanguage, tuple[str, int | None]]] = {
    ScriptLanguage.PYTHON: ("script.py", None),
    ScriptLanguage.SHELL: ("script.sh", 0o700),
    ScriptLanguage.POWERSHELL: ("script.ps1", None),
}
_NARRATION_LABELS: Final[dict[ScriptLanguage, str]] = {
    ScriptLanguage.PYTHON: "Python",
    ScriptLanguage.SHELL: "shell",
    ScriptLanguage.POWERSHELL: "powershell",
}
_TITLE_LABELS: Final[dict[ScriptLanguage, str]] = {
    ScriptLanguage.PYTHON: "Python",
    ScriptLanguage.SHELL: "Shell",
    ScriptLanguage.POWERSHELL: "PowerShell",
}
_MODE_MESSAGES: Final[dict[ConsoleMode, str]] = {
    ConsoleMode.IN_APP: "Streaming output to the in-app console.",
    ConsoleMode.WINDOWS_TERMINAL: "Launching Windows Terminal for interactive execution.",
    ConsoleMode.HIDDEN: "Running script without opening a console window.",
}


@dataclass(frozen=True, slots=True)
class RunRequest:
    """One script execution request.

    ``environment`` is required for Python and ignored otherwise. ``executable``
    overrides the platform shell/PowerShell binary.
    """

    node_id: str
    language: ScriptLanguage
    code: str
    console_mode: ConsoleMode = ConsoleMode.IN_APP
    environment: Environment | None = None
    environment_variables: Mapping[str, str] = field(default_factory=dict)
    working_directory: str | None = None
    executable: str | None = None
    mode: ExecutionMode = ExecutionMode.RUN

    def __post_init__(self) -> None:
        if not isinstance(self.node_id, str) or not self.node_id.strip():
            raise ValueError("RunRequest.node_id: must be a non-empty string")
        if not isinstance(self.code, str):
            raise ValueError("RunRequest.code: must be a string")
        object.__setattr__(self, "language", ScriptLanguage(self.language))
        object.__setattr__(self, "console_mode", ConsoleMode(self.console_mode))
        object.__setattr__(self, "mode", ExecutionMode(self.mode))
        object.__setattr__(
            self, "environment_variables", merge_environment_variables(self.environment_variables)
        )
        if self.language is ScriptLanguage.PYTHON and self.environment is None:
            raise ValueError("RunRequest.environment: python runs require an environment")

    @property
    def env_id(self) -> str | None:
        if self.language is not ScriptLanguage.PYTHON or self.environment is None:
            return None
        return self.environment.env_id


@dataclass(slots=True, eq=False)
class ProcessHandle:
    """Live resources of one run. Mutable fields are guarded by ``lock``.

    ``worker_idents`` holds the reader and finalizing threads of this run; event
    subscribers invoked on those threads must never block on the run's completion.
    """

    run_id: str
    language: ScriptLanguage
    console_mode: ConsoleMode
    started_monotonic: float
    script_dir: Path | None = None
    process: subprocess.Popen[str] | None = None
    cancel_requested: bool = False
    finalized: bool = False
    worker_idents: set[int] = field(default_factory=set)
    lock: threading.Lock = field(default_factory=threading.Lock)
    done: threading.Event = field(default_factory=threading.Event)


class ProcessRegistry:
    """Run id -> live ``ProcessHandle``; owned by one ``ProcessLauncher``."""

    def __init__(self) -> None:
        self._handles: dict[str, ProcessHandle] = {}
        self._lock = threading.Lock()

    def add(self, handle: ProcessHandle) -> None:
        with self._lock:
            if handle.run_id in self._handles:
                raise ValueError(f"run already registered: {handle.run_id}")
            self._handles[handle.run_id] = handle

    def get(self, run_id: str) -> ProcessHandle | None:
        with self._lock:
            return self._handles.get(run_id)

    def remove(self, run_id: str) -> ProcessHandle | None:
        with self._lock:
            return self._handles.pop(run_id, None)

    def live_run_ids(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._handles)

    def __contains__(self, run_id: object) -> bool:
        with self._lock:
            return run_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __iter__(self) -> Iterator[str]:
        return iter(self.live_run_ids())


def build_process_environment(
    language: ScriptLanguage,
    *,
    base: Mapping[str, str],
    python_executable: str | None = None,
    overrides: Mapping[str, str] | None = None,
    platform: str | None = None,
) -> dict[str, str]:
    """Child environment: ambient variables, Python run settings, then ``overrides``."""
    env = dict(base)
    resolved_platform = sys.platform if platform is None else platform
    if language is ScriptLanguage.PYTHON and python_executable:
        path_key = _path_key(env, resolved_platform)
        separator = ";" if is_windows(resolved_platform) else ":"
        interpreter_dir = _parent_directory(python_executable, resolved_platform)
        current = env.get(path_key, "")
        env[path_key] = f"{interpreter_dir}{separator}{current}" if current else interpreter_dir
        env.update(PYTHON_RUN_ENV)
    for key, value in (overrides or {}).items():
        if key.strip():
            env[key] = value
    return env


def split_output_lines(chunk: str) -> list[str]:
    """Split on newlines (either convention) and drop blank lines."""
    return [line for line in chunk.replace("\r\n", "\n").split("\n") if line.strip()]


class ProcessLauncher:
    """Launches runs and owns their live process handles."""

    def __init__(
        self,
        ledger: RunLedger,
        *,
        registry: ProcessRegistry | None = None,
        platform: str | None = None,
        base_environ: Mapping[str, str] | None = None,
        cancel_grace_seconds: float = DEFAULT_CANCEL_GRACE_SECONDS,
        temp_root: str | Path | None = None,
        logger: Any | None = None,
    ) -> None:
        if cancel_grace_seconds <= 0:
            raise ValueError("cancel_grace_seconds must be > 0")
        self._ledger = ledger
        self._registry = ProcessRegistry() if registry is None else registry
        self._platform = sys.platform if platform is None else platform
        self._base_environ = base_environ
        self._cancel_grace = cancel_grace_seconds
        self._temp_root = None if temp_root is None else Path(temp_root)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def registry(self) -> ProcessRegistry:
        return self._registry

    def launch(self, request: RunRequest) -> Run:
        """Start ``request`` and return its run record (``running`` or already failed)."""
        run = self._ledger.start_run(request.node_id, request.language, env_id=request.env_id)
        handle = ProcessHandle(
            run_id=run.run_id,
            language=request.language,
            console_mode=request.console_mode,
            started_monotonic=time.monotonic(),
        )
        self._registry.add(handle)

        with correlation_scope(run_id=run.run_id):
            self._ledger.info(
                run.run_id, f"Starting {_NARRATION_LABELS[request.language]} script execution."
            )

            if request.console_mode is ConsoleMode.WINDOWS_TERMINAL and not is_windows(self._platform):
                self._finalize(
                    handle,
                    RunStatus.FAILED,
                    error_message=TERMINAL_UNSUPPORTED_MESSAGE,
                    narration=(LogLevel.ERROR, TERMINAL_UNSUPPORTED_MESSAGE),
                )
                return self._ledger.require_run(run.run_id)

            self._ledger.info(run.run_id, _MODE_MESSAGES[request.console_mode])

            # Popen raises ValueError for malformed environment entries.
            try:
                spec = self._prepare(handle, request)
                self._spawn(handle, request, spec)
            except (OSError, ValueError) as exc:
                message = f"Execution failed: {exc}"
                self._finalize(
                    handle, RunStatus.FAILED, error_message=message, narration=(LogLevel.ERROR, message)
                )
        return self._ledger.require_run(run.run_id)

    def cancel(self, run_id: str) -> bool:
        """Request termination of a live run; ``False`` when it is not live."""
        handle = self._registry.get(run_id)
        if handle is None:
            return False
        with handle.lock:
            if handle.finalized or handle.cancel_requested:
                return False
            handle.cancel_requested = True
            process = handle.process

        self._logger.info("run_cancel_requested", run_id=run_id)
        if process is not None:
            self._terminate(run_id, process)
        return True

    def wait(self, run_id: str, timeout: float | None = None) -> bool:
        """Block until ``run_id`` is finalized; ``True`` immediately when not live.

        Called from a subscriber running on one of the run's own threads, it reports
        whether finalization has begun instead of blocking.
        """
        handle = self._registry.get(run_id)
        if handle is None:
            if self._ledger.get_run(run_id) is None:
                raise RunNotFoundError(run_id)
            return True
        with handle.lock:
            if threading.get_ident() in handle.worker_idents:
                return handle.finalized
        return handle.done.wait(timeout)

    def shutdown(self, timeout: float | None = None) -> tuple[str, ...]:
        """Cancel every live run and wait for each to finalize."""
        cancelled = tuple(run_id for run_id in self._registry.live_run_ids() if self.cancel(run_id))
        for run_id in cancelled:
            handle = self._registry.get(run_id)
            if handle is not None:
                handle.done.wait(timeout)
        if cancelled:
            self._logger.info("launcher_shutdown", cancelled=list(cancelled))
        return cancelled

    def _prepare(self, handle: ProcessHandle, request: RunRequest) -> CommandSpec:
        filename, mode = _SCRIPT_FILES[request.language]
        prefix = f"{TEMP_SCRIPT_DIR_PREFIX}{request.language.value}-script-"
        script_dir = create_script_directory(prefix, base_dir=self._temp_root)
        handle.script_dir = script_dir
        script_path = write_script_file(script_dir, filename, request.code, mode=mode)

        spec = resolve_command(
            request.language,
            str(script_path),
            platform=self._platform,
            environ=self._environ(),
            python_executable=(
                request.environment.python_executable if request.environment is not None else None
            ),
            executable=request.executable,
            mode=request.mode,
        )
        if request.console_mode is ConsoleMode.WINDOWS_TERMINAL:
            title = f"DocForge {_TITLE_LABELS[request.language]} ({short_id(handle.run_id)})"
            spec = wrap_in_terminal(spec, title=title)
        return spec

    def _spawn(self, handle: ProcessHandle, request: RunRequest, spec: CommandSpec) -> None:
        capture = request.console_mode is not ConsoleMode.WINDOWS_TERMINAL
        env = self._child_environment(request)
        cwd = self._working_directory(request, handle)
        creationflags = 0
        if request.console_mode is ConsoleMode.HIDDEN and is_windows(self._platform):
            creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0)

        if cwd is not None and not Path(cwd).is_dir():
            message = f"Execution failed: working directory does not exist: {cwd}"
            self._finalize(
                handle, RunStatus.FAILED, error_message=message, narration=(LogLevel.ERROR, message)
            )
            return

        try:
            process = subprocess.Popen(
                spec.argv,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture else subprocess.DEVNULL,
                stderr=subprocess.PIPE if capture else subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                creationflags=creationflags,
            )
        except FileNotFoundError:
            message = (
                f'Executable not found: "{spec.command}". '
                "Update your script configuration to point to a valid interpreter."
            )
            self._finalize(
                handle, RunStatus.FAILED, error_message=message, narration=(LogLevel.ERROR, message)
            )
            return

        with handle.lock:
            handle.process = process
            cancel_now = handle.cancel_requested
        self._logger.info(
            "process_spawned",
            run_id=handle.run_id,
            pid=process.pid,
            command=spec.command,
            console_mode=request.console_mode.value,
        )
        if not capture:
            self._ledger.info(handle.run_id, TERMINAL_OPENED_MESSAGE)

        readers: list[threading.Thread] = []
        if capture:
            for stream, level in ((process.stdout, LogLevel.INFO), (process.stderr, LogLevel.ERROR)):
                if stream is None:
                    continue
                reader = threading.Thread(
                    target=self._pump,
                    args=(handle, stream, level),
                    name=f"docforge-{level.value.lower()}-{short_id(handle.run_id)}",
                    daemon=True,
                )
                reader.start()
                readers.append(reader)

        watcher = threading.Thread(
            target=self._watch,
            args=(handle, process, tuple(readers)),
            name=f"docforge-watch-{short_id(handle.run_id)}",
            daemon=True,
        )
        watcher.start()
        if cancel_now:
            self._terminate(handle.run_id, process)

    def _pump(self, handle: ProcessHandle, stream: IO[str], level: LogLevel) -> None:
        run_id = handle.run_id
        with handle.lock:
            handle.worker_idents.add(threading.get_ident())
        # Keep draining after a storage failure so the child never blocks on a full pipe.
        with stream:
            for chunk in stream:
                for line in split_output_lines(chunk):
                    try:
                        self._ledger.append_log(run_id, level, line)
                    except Exception:
                        self._logger.exception("log_append_failed", run_id=run_id)

    def _watch(
        self,
        handle: ProcessHandle,
        process: subprocess.Popen[str],
        readers: tuple[threading.Thread, ...],
    ) -> None:
        with correlation_scope(run_id=handle.run_id):
            try:
                returncode = process.wait()
                for reader in readers:
                    reader.join()

                with handle.lock:
                    cancelled = handle.cancel_requested
                if cancelled:
                    self._finalize(
                        handle,
                        RunStatus.CANCELLED,
                        exit_code=returncode,
                        error_message=CANCELLED_MESSAGE,
                        narration=(LogLevel.ERROR, CANCELLED_MESSAGE),
                    )
                elif returncode == 0:
                    self._finalize(
                        handle,
                        RunStatus.SUCCEEDED,
                        exit_code=0,
                        narration=(LogLevel.INFO, SUCCESS_MESSAGE),
                    )
                else:
                    message = _exit_message(handle.language, returncode)
                    self._finalize(
                        handle,
                        RunStatus.FAILED,
                        exit_code=returncode,
                        error_message=message,
                        narration=(LogLevel.ERROR, message),
                    )
            except Exception as exc:
                self._logger.exception("run_watcher_failed", run_id=handle.run_id)
                message = f"Execution failed: {exc}"
                self._finalize(
                    handle, RunStatus.FAILED, error_message=message, narration=(LogLevel.ERROR, message)
                )

    def _finalize(
        self,
        handle: ProcessHandle,
        status: RunStatus,
        *,
        exit_code: int | None = None,
        error_message: str | None = None,
        narration: tuple[LogLevel, str] | None = None,
    ) -> bool:
        """First caller wins; later calls return ``False`` without side effects.

        Only the ownership flip happens under ``handle.lock``: the ledger publishes
        to subscribers, which may call back into ``cancel`` or ``wait``. When the
        ledger write fails the run is still moved to ``failed`` before release.
        """
        with handle.lock:
            if handle.finalized:
                return False
            handle.finalized = True
            handle.worker_idents.add(threading.get_ident())
        try:
            if narration is not None:
                self._ledger.append_log(handle.run_id, *narration)
            self._ledger.finalize_run(
                handle.run_id, status, exit_code=exit_code, error_message=error_message
            )
        except Exception as exc:
            self._logger.exception("run_finalize_failed", run_id=handle.run_id)
            self._record_failure(handle.run_id, f"Execution failed: {exc}", exit_code)
        finally:
            self._release(handle)
        return True

    def _record_failure(self, run_id: str, message: str, exit_code: int | None) -> None:
        try:
            current = self._ledger.get_run(run_id)
            if current is not None and not current.is_terminal:
                self._ledger.append_log(run_id, LogLevel.ERROR, message)
                self._ledger.finalize_run(
                    run_id, RunStatus.FAILED, exit_code=exit_code, error_message=message
                )
        except Exception:
            self._logger.exception("run_failure_record_failed", run_id=run_id)

    def _release(self, handle: ProcessHandle) -> None:
        self._registry.remove(handle.run_id)
        self._cleanup(handle)
        handle.done.set()

    def _terminate(self, run_id: str, process: subprocess.Popen[str]) -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            return

        def _escalate() -> None:
            try:
                process.wait(timeout=self._cancel_grace)
            except subprocess.TimeoutExpired:
                self._logger.warning("run_kill_escalated", run_id=run_id)
                try:
                    process.kill()
                except ProcessLookupError:
                    return

        threading.Thread(
            target=_escalate, name=f"docforge-cancel-{short_id(run_id)}", daemon=True
        ).start()

    def _cleanup(self, handle: ProcessHandle) -> None:
        with handle.lock:
            script_dir, handle.script_dir = handle.script_dir, None
        if script_dir is None:
            return
        try:
            safe_delete(script_dir, script_dir.parent)
        except (OSError, ValueError) as exc:
            self._logger.warning(
                "temp_cleanup_failed", run_id=handle.run_id, path=str(script_dir), error=str(exc)
            )

    def _child_environment(self, request: RunRequest) -> dict[str, str]:
        if request.language is ScriptLanguage.PYTHON and request.environment is not None:
            overrides = merge_environment_variables(
                request.environment.environment_variables, request.environment_variables
            )
            return build_process_environment(
                request.language,
                base=self._environ(),
                python_executable=request.environment.python_executable,
                overrides=overrides,
                platform=self._platform,
            )
        return build_process_environment(
            request.language, base=self._environ(), overrides=request.environment_variables
        )

    def _working_directory(self, request: RunRequest, handle: ProcessHandle) -> str | None:
        if request.working_directory:
            return request.working_directory
        if request.environment is not None and request.environment.working_directory:
            return request.environment.working_directory
        return None if handle.script_dir is None else str(handle.script_dir)

    def _environ(self) -> Mapping[str, str]:
        return os.environ if self._base_environ is None else self._base_environ


def _exit_message(language: ScriptLanguage, returncode: int) -> str:
    if language is ScriptLanguage.PYTHON:
        return f"Python process exited with code {returncode}."
    return f"Process exited with code {returncode}."


def _parent_directory(executable: str, platform: str) -> str:
    if is_windows(platform):
        return str(PureWindowsPath(executable).parent)
    return str(PurePosixPath(executable).parent)


def _path_key(env: Mapping[str, str], platform: str) -> str:
    if is_windows(platform):
        for key in env:
            if key.upper() == "PATH":
                return key
    return "PATH"


__all__ = [
    "CANCELLED_MESSAGE",
    "DEFAULT_CANCEL_GRACE_SECONDS",
    "ProcessHandle",
    "ProcessLauncher",
    "ProcessRegistry",
    "RunRequest",
    "SUCCESS_MESSAGE",
    "TERMINAL_OPENED_MESSAGE",
    "TERMINAL_UNSUPPORTED_MESSAGE",
    "build_process_environment",
    "split_output_lines",
]
