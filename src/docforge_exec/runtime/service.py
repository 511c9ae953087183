"""
docforge-exec — module skeleton

File: src/docforge_exec/runtime/service.py
Last updated: 2026-10-17

Purpose
- Caller-facing facade wiring the environment store, run ledger, process
  launcher and node bindings over one state DB.

What should be included in this file
- ExecutionService with the environment, node settings, run and history
  operations, plus the subscribable event feed.
- Construction from loaded configuration.

Functional requirements
- Provisioning and configuration errors raise to the caller; once a run is
  accepted its failures are only recorded on the run and its log.
- Every run updates the (node, language) binding's most recent run.

Non-functional requirements
- No global state; tests build a service over a temporary DB and fake runners.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import structlog

from docforge_exec.config.schema import execution_defaults
from docforge_exec.constants import DEFAULT_RUN_HISTORY_LIMIT
from docforge_exec.domain.models import (
    ConsoleMode,
    Environment,
    EnvironmentDefaults,
    ExecutionMode,
    InterpreterInfo,
    LogEntry,
    NodeBinding,
    PackageSpec,
    Run,
    ScriptLanguage,
)
from docforge_exec.observability.events import RunEventFeed
from docforge_exec.persistence.repositories import (
    EnvironmentRepo,
    NodeBindingRepo,
    RunLogRepo,
    RunRepo,
)
from docforge_exec.persistence.state_db import StateDB
from docforge_exec.runtime import discovery
from docforge_exec.runtime.bindings import NodeBindingService
from docforge_exec.runtime.environments import (
    DEFAULT_PROVISIONING_TIMEOUT_SECONDS,
    CommandRunner,
    EnvironmentStore,
)
from docforge_exec.runtime.errors import EnvironmentNotFoundError, ExecutionConfigError
from docforge_exec.runtime.launcher import (
    DEFAULT_CANCEL_GRACE_SECONDS,
    ProcessLauncher,
    RunRequest,
)
from docforge_exec.runtime.ledger import RunLedger

InterpreterDetector = Callable[[], list[InterpreterInfo]]


class ExecutionService:
    """Execution subsystem facade."""

    def __init__(
        self,
        db: StateDB,
        *,
        environments_root: str | Path,
        defaults: EnvironmentDefaults | None = None,
        console_mode: ConsoleMode | str = ConsoleMode.IN_APP,
        history_limit: int = DEFAULT_RUN_HISTORY_LIMIT,
        cancel_grace_seconds: float = DEFAULT_CANCEL_GRACE_SECONDS,
        version_probe_timeout_seconds: float = discovery.DEFAULT_PROBE_TIMEOUT_SECONDS,
        provisioning_timeout_seconds: float = DEFAULT_PROVISIONING_TIMEOUT_SECONDS,
        runner: CommandRunner | None = None,
        interpreter_detector: InterpreterDetector | None = None,
        platform: str | None = None,
        base_environ: Mapping[str, str] | None = None,
        feed: RunEventFeed | None = None,
        logger: Any | None = None,
    ) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        self._db = db
        self._platform = sys.platform if platform is None else platform
        self._defaults = EnvironmentDefaults() if defaults is None else defaults
        self._console_mode = ConsoleMode(console_mode)
        self._history_limit = history_limit
        self._probe_timeout = version_probe_timeout_seconds
        self._detector = interpreter_detector
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        self._store = EnvironmentStore(
            EnvironmentRepo(db),
            environments_root=environments_root,
            runner=runner,
            platform=self._platform,
            provisioning_timeout_seconds=provisioning_timeout_seconds,
            version_probe_timeout_seconds=version_probe_timeout_seconds,
            base_environ=base_environ,
            logger=logger,
        )
        self._ledger = RunLedger(RunRepo(db), RunLogRepo(db), feed=feed, logger=logger)
        self._launcher = ProcessLauncher(
            self._ledger,
            platform=self._platform,
            base_environ=base_environ,
            cancel_grace_seconds=cancel_grace_seconds,
            logger=logger,
        )
        self._bindings = NodeBindingService(NodeBindingRepo(db), self._store, logger=logger)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        runner: CommandRunner | None = None,
        interpreter_detector: InterpreterDetector | None = None,
        platform: str | None = None,
        base_environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> ExecutionService:
        """Build a service from a validated, path-normalized config mapping."""
        paths = config["paths"]
        execution = config["execution"]
        return cls(
            StateDB(paths["state_db"]),
            environments_root=paths["environments_root"],
            defaults=execution_defaults(config),
            console_mode=execution["console_mode"],
            history_limit=execution["history_limit"],
            cancel_grace_seconds=execution["cancel_grace_seconds"],
            version_probe_timeout_seconds=execution["version_probe_timeout_seconds"],
            provisioning_timeout_seconds=execution["provisioning_timeout_seconds"],
            runner=runner,
            interpreter_detector=interpreter_detector,
            platform=platform,
            base_environ=base_environ,
            logger=logger,
        )

    @property
    def events(self) -> RunEventFeed:
        return self._ledger.feed

    @property
    def defaults(self) -> EnvironmentDefaults:
        return self._defaults

    @property
    def store(self) -> EnvironmentStore:
        return self._store

    @property
    def launcher(self) -> ProcessLauncher:
        return self._launcher

    # Environments

    def list_environments(self) -> list[Environment]:
        return self._store.list()

    def get_environment(self, env_id: str) -> Environment:
        return self._store.require(env_id)

    def detect_interpreters(self) -> list[InterpreterInfo]:
        if self._detector is not None:
            return self._detector()
        return discovery.detect_interpreters(
            platform=self._platform, timeout_seconds=self._probe_timeout
        )

    def create_environment(
        self,
        *,
        name: str,
        base_interpreter: str,
        packages: Sequence[PackageSpec | str] = (),
        environment_variables: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        description: str | None = None,
        managed: bool = True,
    ) -> Environment:
        return self._store.create(
            name=name,
            base_interpreter=base_interpreter,
            packages=_package_specs(packages),
            environment_variables=environment_variables,
            working_directory=working_directory,
            description=description,
            managed=managed,
        )

    def update_environment(
        self,
        env_id: str,
        *,
        name: str | None = None,
        packages: Sequence[PackageSpec | str] | None = None,
        environment_variables: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        description: str | None = None,
    ) -> Environment:
        return self._store.update(
            env_id,
            name=name,
            packages=None if packages is None else _package_specs(packages),
            environment_variables=environment_variables,
            working_directory=working_directory,
            description=description,
        )

    def delete_environment(self, env_id: str) -> bool:
        return self._store.delete(env_id)

    # Node settings

    def get_node_settings(
        self, node_id: str, language: ScriptLanguage | str = ScriptLanguage.PYTHON
    ) -> NodeBinding:
        return self._bindings.get_settings(node_id, language)

    def set_node_settings(
        self,
        node_id: str,
        env_id: str | None,
        auto_detect: bool,
        language: ScriptLanguage | str = ScriptLanguage.PYTHON,
    ) -> NodeBinding:
        if env_id is not None:
            self._store.require(env_id)
        return self._bindings.set_settings(node_id, env_id, auto_detect, language)

    def set_script_settings(
        self,
        node_id: str,
        language: ScriptLanguage | str,
        *,
        environment_variables: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        executable: str | None = None,
    ) -> NodeBinding:
        return self._bindings.set_script_settings(
            node_id,
            language,
            environment_variables=environment_variables,
            working_directory=working_directory,
            executable=executable,
        )

    def clear_node_settings(
        self, node_id: str, language: ScriptLanguage | str = ScriptLanguage.PYTHON
    ) -> bool:
        return self._bindings.clear_settings(node_id, language)

    def ensure_node_environment(
        self,
        node_id: str,
        defaults: EnvironmentDefaults | None = None,
        interpreters: Sequence[InterpreterInfo] | None = None,
    ) -> Environment:
        """Resolve the node's Python environment; interpreters are detected when omitted."""
        available = self.detect_interpreters() if interpreters is None else interpreters
        return self._bindings.ensure_environment_for_node(
            node_id, self._defaults if defaults is None else defaults, available
        )

    # Runs

    def run_script(
        self,
        node_id: str,
        language: ScriptLanguage | str,
        code: str,
        *,
        console_mode: ConsoleMode | str | None = None,
        env_id: str | None = None,
        environment_variables: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        executable: str | None = None,
        mode: ExecutionMode | str = ExecutionMode.RUN,
    ) -> Run:
        """Launch ``code`` for ``node_id`` and return the ``running`` (or already failed) run.

        Shell and PowerShell runs fall back to the node's stored variables, working
        directory and executable; explicitly supplied values are stored for next time.
        """
        parsed_language = ScriptLanguage(language)
        environment: Environment | None = None
        if parsed_language is ScriptLanguage.PYTHON:
            if env_id is None:
                raise ExecutionConfigError("Python runs require an environment.")
            environment = self._store.get(env_id)
            if environment is None:
                raise EnvironmentNotFoundError(env_id)
        else:
            stored = self._bindings.get_settings(node_id, parsed_language)
            supplied = (environment_variables, working_directory, executable)
            if environment_variables is None:
                environment_variables = stored.environment_variables
            if working_directory is None:
                working_directory = stored.working_directory
            if executable is None:
                executable = stored.executable
            if any(value is not None for value in supplied):
                self._bindings.set_script_settings(
                    node_id,
                    parsed_language,
                    environment_variables=environment_variables,
                    working_directory=working_directory,
                    executable=executable,
                )

        request = RunRequest(
            node_id=node_id,
            language=parsed_language,
            code=code,
            console_mode=self._console_mode if console_mode is None else ConsoleMode(console_mode),
            environment=environment,
            environment_variables=dict(environment_variables or {}),
            working_directory=working_directory,
            executable=executable,
            mode=ExecutionMode(mode),
        )
        run = self._launcher.launch(request)
        self._bindings.record_run(node_id, parsed_language, run.run_id)
        return run

    def run_python_for_node(
        self,
        node_id: str,
        code: str,
        *,
        defaults: EnvironmentDefaults | None = None,
        interpreters: Sequence[InterpreterInfo] | None = None,
        console_mode: ConsoleMode | str | None = None,
        environment_variables: Mapping[str, str] | None = None,
        mode: ExecutionMode | str = ExecutionMode.RUN,
    ) -> Run:
        """Resolve (or provision) the node's environment, then run ``code`` in it."""
        environment = self.ensure_node_environment(node_id, defaults, interpreters)
        return self.run_script(
            node_id,
            ScriptLanguage.PYTHON,
            code,
            console_mode=console_mode,
            env_id=environment.env_id,
            environment_variables=environment_variables,
            mode=mode,
        )

    def cancel_run(self, run_id: str) -> bool:
        return self._launcher.cancel(run_id)

    def wait_for_run(self, run_id: str, timeout: float | None = None) -> bool:
        return self._launcher.wait(run_id, timeout)

    def get_run(self, run_id: str) -> Run | None:
        return self._ledger.get_run(run_id)

    def get_runs_for_node(
        self,
        node_id: str,
        *,
        language: ScriptLanguage | str | None = None,
        limit: int | None = None,
    ) -> list[Run]:
        return self._ledger.get_runs_for_node(
            node_id, language=language, limit=self._history_limit if limit is None else limit
        )

    def get_run_logs(self, run_id: str, *, after_sequence: int = 0) -> list[LogEntry]:
        return self._ledger.get_run_logs(run_id, after_sequence=after_sequence)

    def shutdown(self, timeout: float | None = None) -> tuple[str, ...]:
        cancelled = self._launcher.shutdown(timeout)
        self._logger.info("execution_service_shutdown", cancelled=len(cancelled))
        return cancelled


def _package_specs(packages: Sequence[PackageSpec | str]) -> tuple[PackageSpec, ...]:
    return tuple(
        item if isinstance(item, PackageSpec) else PackageSpec.parse(item) for item in packages
    )


__all__ = ["ExecutionService", "InterpreterDetector"]
