"""
docforge-exec — module skeleton

File: src/docforge_exec/runtime/environments.py
Last updated: 2026-10-17

Purpose
- Environment store: CRUD over interpreter environments, including creation of
  managed virtual environments and package installation into them.

Functional requirements
- Managed environments live in ``<environments_root>/<env_id>``; deleting one
  removes that tree, and only that tree.
- A failed creation registers nothing and leaves no directory behind; the error
  carries the interpreter's captured stderr.
- Package installs into one environment are serialized.

Non-functional requirements
- Subprocess execution goes through an injectable ``CommandRunner`` so tests run
  offline and deterministically.
"""

from __future__ import annotations

import os
import subprocess
import sys
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Final, Protocol

import structlog

from docforge_exec.constants import PROVISIONING_ENV
from docforge_exec.domain.ids import generate_env_id
from docforge_exec.domain.models import Environment, EnvironmentConfig, PackageSpec
from docforge_exec.persistence.repositories import EnvironmentRepo
from docforge_exec.runtime.discovery import DEFAULT_PROBE_TIMEOUT_SECONDS, is_windows, parse_python_version
from docforge_exec.runtime.errors import EnvironmentNotFoundError, EnvironmentProvisioningError
from docforge_exec.utils.fs import safe_delete

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017

DEFAULT_PROVISIONING_TIMEOUT_SECONDS: Final[float] = 900.0
PIP_INSTALL_FLAGS: Final[tuple[str, ...]] = ("--no-warn-script-location", "--disable-pip-version-check")


@dataclass(frozen=True, slots=True)
class CommandExecutionResult:
    """Normalized subprocess execution result for provisioning commands."""

    command: tuple[str, ...]
    cwd: Path | None
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    """Injectable command runner used for deterministic/offline testing."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        timeout_seconds: float,
    ) -> CommandExecutionResult: ...


class SubprocessCommandRunner:
    """Default command runner backed by ``subprocess.run``."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        timeout_seconds: float,
    ) -> CommandExecutionResult:
        try:
            completed = subprocess.run(
                list(command),
                cwd=cwd,
                env=None if env is None else dict(env),
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            raise EnvironmentProvisioningError(
                f"command timed out after {timeout_seconds} seconds: {' '.join(command)}",
                command=command,
            ) from exc
        except OSError as exc:
            raise EnvironmentProvisioningError(
                f"failed to start {command[0]}: {exc}", command=command
            ) from exc

        return CommandExecutionResult(
            command=tuple(command),
            cwd=cwd,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


def managed_python_path(env_root: Path, *, platform: str | None = None) -> Path:
    """Interpreter produced by ``python -m venv`` inside ``env_root``."""
    if is_windows(sys.platform if platform is None else platform):
        return env_root / "Scripts" / "python.exe"
    return env_root / "bin" / "python3"


def is_executable_file(path: str | Path) -> bool:
    candidate = Path(path)
    return candidate.is_file() and os.access(candidate, os.X_OK)


class EnvironmentStore:
    """Owns environment registrations and the on-disk trees of managed environments."""

    def __init__(
        self,
        repo: EnvironmentRepo,
        *,
        environments_root: str | Path,
        runner: CommandRunner | None = None,
        platform: str | None = None,
        provisioning_timeout_seconds: float = DEFAULT_PROVISIONING_TIMEOUT_SECONDS,
        version_probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        base_environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        if provisioning_timeout_seconds <= 0:
            raise ValueError("provisioning_timeout_seconds must be > 0")
        if version_probe_timeout_seconds <= 0:
            raise ValueError("version_probe_timeout_seconds must be > 0")
        self._repo = repo
        self._root = Path(environments_root).expanduser()
        self._runner: CommandRunner = SubprocessCommandRunner() if runner is None else runner
        self._platform = sys.platform if platform is None else platform
        self._provisioning_timeout = provisioning_timeout_seconds
        self._probe_timeout = version_probe_timeout_seconds
        self._base_environ = base_environ
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._install_locks: dict[str, threading.Lock] = {}
        self._install_locks_guard = threading.Lock()

    @property
    def environments_root(self) -> Path:
        return self._root

    def list(self) -> list[Environment]:
        return self._repo.list()

    def get(self, env_id: str) -> Environment | None:
        return self._repo.get(env_id)

    def require(self, env_id: str) -> Environment:
        environment = self._repo.get(env_id)
        if environment is None:
            raise EnvironmentNotFoundError(env_id)
        return environment

    def environment_root(self, env_id: str) -> Path:
        return self._root / env_id

    def create(
        self,
        *,
        name: str,
        base_interpreter: str,
        packages: Sequence[PackageSpec] = (),
        environment_variables: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        description: str | None = None,
        managed: bool = True,
    ) -> Environment:
        """Provision (when managed) and register an environment.

        Raises ``EnvironmentProvisioningError`` on any failure; nothing is
        registered and a partially built tree is removed.
        """
        env_id = generate_env_id()
        config = EnvironmentConfig(
            packages=tuple(packages),
            environment_variables=dict(environment_variables or {}),
            base_interpreter=base_interpreter,
        )

        if managed:
            env_root = self.environment_root(env_id)
            try:
                python_executable = self._materialize(env_root, base_interpreter, config)
                python_version = self._require_version(python_executable)
            except BaseException:
                self._remove_tree(env_id, env_root)
                raise
        else:
            if not is_executable_file(base_interpreter):
                raise EnvironmentProvisioningError(
                    f"Python executable not found or not executable: {base_interpreter}"
                )
            python_executable = base_interpreter
            python_version = self._require_version(python_executable)

        now = _utc_now()
        environment = Environment(
            env_id=env_id,
            name=name,
            python_executable=python_executable,
            python_version=python_version,
            managed=managed,
            config=config,
            working_directory=working_directory,
            description=description,
            created_at=now,
            updated_at=now,
        )
        try:
            self._repo.add(environment)
        except BaseException:
            if managed:
                self._remove_tree(env_id, self.environment_root(env_id))
            raise

        self._logger.info(
            "environment_created",
            env_id=env_id,
            managed=managed,
            python_version=python_version,
            packages=list(config.requirements()),
        )
        return environment

    def update(
        self,
        env_id: str,
        *,
        name: str | None = None,
        packages: Sequence[PackageSpec] | None = None,
        environment_variables: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        description: str | None = None,
    ) -> Environment:
        """Apply provided fields; ``None`` keeps the stored value.

        The configuration row is written before packages are installed, so a failed
        install leaves the stored list ahead of what is actually installed.
        """
        current = self.require(env_id)
        updated = replace(
            current,
            name=current.name if name is None else name,
            config=current.config.merged(
                packages=None if packages is None else tuple(packages),
                environment_variables=environment_variables,
            ),
            working_directory=(
                current.working_directory if working_directory is None else working_directory
            ),
            description=current.description if description is None else description,
            updated_at=_utc_now(),
        )
        self._repo.save(updated)

        if packages and current.managed:
            self._install_packages(env_id, updated.python_executable, updated.config.requirements())

        self._logger.info(
            "environment_updated",
            env_id=env_id,
            packages_changed=packages is not None,
            variables_changed=environment_variables is not None,
        )
        return updated

    def delete(self, env_id: str) -> bool:
        """Unregister ``env_id``; a missing environment is a no-op returning ``False``."""
        environment = self._repo.get(env_id)
        if environment is None:
            return False
        self._repo.delete(env_id)
        if environment.managed:
            self._remove_tree(env_id, self.environment_root(env_id))
        with self._install_locks_guard:
            self._install_locks.pop(env_id, None)
        self._logger.info("environment_deleted", env_id=env_id, managed=environment.managed)
        return True

    def probe_version(self, executable: str) -> str | None:
        try:
            result = self._runner.run(
                [executable, "--version"],
                cwd=None,
                env=None,
                timeout_seconds=self._probe_timeout,
            )
        except EnvironmentProvisioningError:
            return None
        return parse_python_version(result.stdout) or parse_python_version(result.stderr)

    def _materialize(self, env_root: Path, base_interpreter: str, config: EnvironmentConfig) -> str:
        self._root.mkdir(parents=True, exist_ok=True)
        command = [base_interpreter, "-m", "venv", str(env_root)]
        result = self._runner.run(
            command,
            cwd=None,
            env=self._provisioning_environ(),
            timeout_seconds=self._provisioning_timeout,
        )
        if result.returncode != 0:
            raise EnvironmentProvisioningError(
                "Failed to create virtual environment. "
                f"Exit code {result.returncode}. {result.stderr.strip()}".rstrip(),
                command=command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        python_executable = managed_python_path(env_root, platform=self._platform)
        if not is_executable_file(python_executable):
            raise EnvironmentProvisioningError(
                f"Python executable not found or not executable: {python_executable}"
            )

        self._install_packages(env_root.name, str(python_executable), config.requirements())
        return str(python_executable)

    def _install_packages(self, env_id: str, python_executable: str, requirements: Sequence[str]) -> None:
        if not requirements:
            return
        command = [python_executable, "-m", "pip", "install", *PIP_INSTALL_FLAGS, *requirements]
        with self._install_lock(env_id):
            result = self._runner.run(
                command,
                cwd=None,
                env=self._provisioning_environ(),
                timeout_seconds=self._provisioning_timeout,
            )
        if result.returncode != 0:
            raise EnvironmentProvisioningError(
                "Failed to install packages. "
                f"Exit code {result.returncode}. {result.stderr.strip()}".rstrip(),
                command=command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        self._logger.info("packages_installed", env_id=env_id, packages=list(requirements))

    def _require_version(self, python_executable: str) -> str:
        version = self.probe_version(python_executable)
        if version is None:
            raise EnvironmentProvisioningError(
                f"Unable to determine Python version for executable at {python_executable}"
            )
        return version

    def _install_lock(self, env_id: str) -> threading.Lock:
        with self._install_locks_guard:
            lock = self._install_locks.get(env_id)
            if lock is None:
                lock = threading.Lock()
                self._install_locks[env_id] = lock
            return lock

    def _provisioning_environ(self) -> dict[str, str]:
        base = os.environ if self._base_environ is None else self._base_environ
        return {**base, **PROVISIONING_ENV}

    def _remove_tree(self, env_id: str, env_root: Path) -> None:
        if not env_root.exists() and not env_root.is_symlink():
            return
        try:
            safe_delete(env_root, self._root)
        except (OSError, ValueError) as exc:
            self._logger.warning(
                "environment_cleanup_failed", env_id=env_id, path=str(env_root), error=str(exc)
            )


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = [
    "CommandExecutionResult",
    "CommandRunner",
    "DEFAULT_PROVISIONING_TIMEOUT_SECONDS",
    "EnvironmentStore",
    "PIP_INSTALL_FLAGS",
    "SubprocessCommandRunner",
    "is_executable_file",
    "managed_python_path",
]
