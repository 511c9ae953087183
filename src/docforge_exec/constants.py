"""Stable constants shared across the execution subsystem."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
STATE_DB_SCHEMA_VERSION: Final[int] = 1

# Default runtime paths (relative to the config file directory unless overridden).
STATE_DB_PATH: Final[PurePosixPath] = PurePosixPath("state/docforge.sqlite3")
ENVIRONMENTS_DIR: Final[PurePosixPath] = PurePosixPath("python-envs")
DEFAULT_CONFIG_FILENAME: Final[str] = "docforge-exec.toml"

# Environment variables forced on every managed Python interpreter invocation.
PROVISIONING_ENV: Final[dict[str, str]] = {
    "PYTHONNOUSERSITE": "1",
    "PYTHONUNBUFFERED": "1",
    "PYTHONDONTWRITEBYTECODE": "1",
}
PYTHON_RUN_ENV: Final[dict[str, str]] = {
    "PYTHONUNBUFFERED": "1",
    "PYTHONIOENCODING": "utf-8",
    "PYTHONNOUSERSITE": "1",
    "PYTHONDONTWRITEBYTECODE": "1",
    "PIP_DISABLE_PIP_VERSION_CHECK": "1",
}

# Run history.
DEFAULT_RUN_HISTORY_LIMIT: Final[int] = 20
TEMP_SCRIPT_DIR_PREFIX: Final[str] = "docforge-"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_RUN_HISTORY_LIMIT",
    "ENVIRONMENTS_DIR",
    "PROVISIONING_ENV",
    "PYTHON_RUN_ENV",
    "STATE_DB_PATH",
    "STATE_DB_SCHEMA_VERSION",
    "TEMP_SCRIPT_DIR_PREFIX",
]
