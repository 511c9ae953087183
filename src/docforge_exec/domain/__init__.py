"""
docforge-exec — module skeleton

File: src/docforge_exec/domain/__init__.py
Last updated: 2026-10-17

Purpose
- Domain types shared across layers: Environment, Run, LogEntry, NodeBinding and
  the typed configuration record stored alongside environments.

Functional requirements
- Domain objects must validate on construction and serialize canonically.

Non-functional requirements
- Domain layer must stay free of IO side effects.
"""

from __future__ import annotations

from docforge_exec.domain.models import (
    ConsoleMode,
    Environment,
    EnvironmentConfig,
    EnvironmentDefaults,
    ExecutionMode,
    InterpreterInfo,
    LogEntry,
    LogLevel,
    NodeBinding,
    PackageSpec,
    Run,
    RunStatus,
    ScriptLanguage,
)

__all__ = [
    "ConsoleMode",
    "Environment",
    "EnvironmentConfig",
    "EnvironmentDefaults",
    "ExecutionMode",
    "InterpreterInfo",
    "LogEntry",
    "LogLevel",
    "NodeBinding",
    "PackageSpec",
    "Run",
    "RunStatus",
    "ScriptLanguage",
]
