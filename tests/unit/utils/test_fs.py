"""Regression tests for script materialization and guarded deletion."""

from __future__ import annotations

import os
import stat
import sys
from typing import TYPE_CHECKING

import pytest

from docforge_exec.utils.fs import create_script_directory, safe_delete, write_script_file

if TYPE_CHECKING:
    from pathlib import Path


def test_each_script_directory_is_fresh(tmp_path: Path) -> None:
    first = create_script_directory("docforge-shell-script-", base_dir=tmp_path)
    second = create_script_directory("docforge-shell-script-", base_dir=tmp_path)

    assert first != second
    assert first.parent == tmp_path
    assert first.name.startswith("docforge-shell-script-")
    assert list(first.iterdir()) == []


def test_write_script_file_uses_utf8_and_lf(tmp_path: Path) -> None:
    path = write_script_file(tmp_path, "script.py", "print('héllo')\r\nprint(2)\n")

    assert path == tmp_path / "script.py"
    assert path.read_bytes() == "print('héllo')\r\nprint(2)\n".encode()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_write_script_file_applies_mode(tmp_path: Path) -> None:
    path = write_script_file(tmp_path, "script.sh", "echo hi\n", mode=0o700)
    assert stat.S_IMODE(path.stat().st_mode) == 0o700


def test_write_script_file_rejects_nested_names(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="path separators"):
        write_script_file(tmp_path, "../escape.py", "")


def test_safe_delete_removes_tree_inside_root(tmp_path: Path) -> None:
    target = tmp_path / "env-1"
    (target / "bin").mkdir(parents=True)
    (target / "bin" / "python3").write_text("", encoding="utf-8")

    safe_delete(target, tmp_path)

    assert not target.exists()
    assert tmp_path.is_dir()


def test_safe_delete_refuses_root_and_outside_paths(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    outside = tmp_path / "outside"
    outside.mkdir()

    with pytest.raises(ValueError, match="outside owning root"):
        safe_delete(root, root)
    with pytest.raises(ValueError, match="outside owning root"):
        safe_delete(outside, root)
    with pytest.raises(ValueError, match="outside owning root"):
        safe_delete(root / ".." / "outside", root)
    assert outside.is_dir()


@pytest.mark.skipif(not hasattr(os, "symlink") or sys.platform == "win32", reason="symlinks")
def test_safe_delete_unlinks_symlink_without_following(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    precious = tmp_path / "precious"
    precious.mkdir()
    (precious / "keep.txt").write_text("keep", encoding="utf-8")
    link = root / "link"
    link.symlink_to(precious, target_is_directory=True)

    safe_delete(link, root)

    assert not link.exists()
    assert (precious / "keep.txt").read_text(encoding="utf-8") == "keep"


def test_safe_delete_requires_existing_root(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        safe_delete(tmp_path / "a", tmp_path / "missing-root")
