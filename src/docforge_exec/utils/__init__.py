"""Utility exports for filesystem helpers."""

from docforge_exec.utils.fs import (
    create_script_directory,
    safe_delete,
    write_script_file,
)

__all__ = [
    "create_script_directory",
    "safe_delete",
    "write_script_file",
]
