"""Exception taxonomy for the execution runtime."""

from __future__ import annotations

from collections.abc import Sequence


class ExecutionError(RuntimeError):
    """Base class for errors raised to callers of the execution runtime."""


class ExecutionConfigError(ExecutionError):
    """Raised when caller defaults or requests are missing required settings."""


class NoInterpreterError(ExecutionError):
    """Raised when no interpreter is available to provision an environment."""


class EnvironmentNotFoundError(ExecutionError, LookupError):
    """Raised when an environment identifier does not resolve."""

    def __init__(self, env_id: str) -> None:
        self.env_id = env_id
        super().__init__(f"Environment not found: {env_id}")


class RunNotFoundError(ExecutionError, LookupError):
    """Raised when a run identifier does not resolve."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")


class EnvironmentProvisioningError(ExecutionError):
    """Raised when environment creation or package installation fails.

    Carries the failing command and its captured output when a subprocess was
    involved, so callers can surface the interpreter's own error text.
    """

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message)


__all__ = [
    "EnvironmentNotFoundError",
    "EnvironmentProvisioningError",
    "ExecutionConfigError",
    "ExecutionError",
    "NoInterpreterError",
    "RunNotFoundError",
]
