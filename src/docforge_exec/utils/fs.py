"""
docforge-exec — filesystem utilities

File: src/docforge_exec/utils/fs.py
Last updated: 2026-10-17

Purpose
- Temp script materialization and guarded deletion of store-owned trees.

Functional requirements
- Deletion refuses paths outside the owning root (environments root or temp root).
- Every script run gets its own freshly created directory.

Non-functional requirements
- Standard library only and cross-platform behavior where feasible.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "create_script_directory",
    "safe_delete",
    "write_script_file",
]


def safe_delete(path: PathLike, root: PathLike) -> None:
    """
    Delete ``path`` only if it is contained within ``root``.

    Symlinks are unlinked without traversing into their targets.
    """

    owner = Path(root).resolve(strict=True)
    if not owner.is_dir():
        raise NotADirectoryError(f"{owner!s} is not a directory")

    target = Path(path)
    parent_resolved = target.parent.resolve(strict=True)
    candidate = parent_resolved / target.name
    if candidate == owner or not _is_relative_to(candidate, owner):
        raise ValueError(f"refusing to delete path outside owning root: {target!s}")

    if target.is_symlink():
        target.unlink()
        return

    resolved_target = target.resolve(strict=True)
    if not _is_relative_to(resolved_target, owner):
        raise ValueError(f"refusing to delete path outside owning root: {target!s}")

    if target.is_dir():
        shutil.rmtree(target)
        return

    target.unlink()


def create_script_directory(prefix: str, *, base_dir: PathLike | None = None) -> Path:
    """Create a fresh private directory for one run's script file."""

    return Path(tempfile.mkdtemp(prefix=prefix, dir=None if base_dir is None else str(base_dir)))


def write_script_file(directory: Path, filename: str, text: str, *, mode: int | None = None) -> Path:
    """Write ``text`` as UTF-8 into ``directory/filename``; optionally chmod it."""

    if Path(filename).name != filename:
        raise ValueError(f"script filename must not contain path separators: {filename!r}")
    target = directory / filename
    with target.open("w", encoding="utf-8", newline="\n") as handle:
        handle.write(text)
    if mode is not None:
        target.chmod(mode)
    return target


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True
