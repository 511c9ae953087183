"""
docforge-exec — module skeleton

File: src/docforge_exec/persistence/__init__.py
Last updated: 2026-10-17

Purpose
- Persistence layer: state DB access, migrations, repositories.

Functional requirements
- Run history and log streams must survive process restarts.

Non-functional requirements
- SQLite-first; avoid heavy DB dependencies.
"""

from __future__ import annotations

from docforge_exec.persistence.repositories import (
    EnvironmentRepo,
    NodeBindingRepo,
    RunLogRepo,
    RunRepo,
)
from docforge_exec.persistence.state_db import (
    StateDB,
    StateDBBusyError,
    StateDBCorruptionError,
    StateDBError,
    StateDBMigrationError,
)

__all__ = [
    "EnvironmentRepo",
    "NodeBindingRepo",
    "RunLogRepo",
    "RunRepo",
    "StateDB",
    "StateDBBusyError",
    "StateDBCorruptionError",
    "StateDBError",
    "StateDBMigrationError",
]
