"""
docforge-exec — module skeleton

File: src/docforge_exec/runtime/__init__.py
Last updated: 2026-10-17

Purpose
- Execution runtime: interpreter discovery, environment store, command
  resolution, process launching, run ledger, node bindings and the facade.
"""

from __future__ import annotations

from docforge_exec.runtime.bindings import NodeBindingService
from docforge_exec.runtime.commands import CommandSpec, resolve_command, wrap_in_terminal
from docforge_exec.runtime.discovery import detect_interpreters, select_interpreter
from docforge_exec.runtime.environments import (
    CommandExecutionResult,
    CommandRunner,
    EnvironmentStore,
    SubprocessCommandRunner,
)
from docforge_exec.runtime.errors import (
    EnvironmentNotFoundError,
    EnvironmentProvisioningError,
    ExecutionConfigError,
    ExecutionError,
    NoInterpreterError,
    RunNotFoundError,
)
from docforge_exec.runtime.launcher import ProcessLauncher, ProcessRegistry, RunRequest
from docforge_exec.runtime.ledger import RunLedger
from docforge_exec.runtime.service import ExecutionService

__all__ = [
    "CommandExecutionResult",
    "CommandRunner",
    "CommandSpec",
    "EnvironmentNotFoundError",
    "EnvironmentProvisioningError",
    "EnvironmentStore",
    "ExecutionConfigError",
    "ExecutionError",
    "ExecutionService",
    "NoInterpreterError",
    "NodeBindingService",
    "ProcessLauncher",
    "ProcessRegistry",
    "RunLedger",
    "RunNotFoundError",
    "RunRequest",
    "SubprocessCommandRunner",
    "detect_interpreters",
    "resolve_command",
    "select_interpreter",
    "wrap_in_terminal",
]
