"""
docforge-exec — module skeleton

File: src/docforge_exec/__init__.py
Last updated: 2026-10-17

Purpose
- Package root for the DocForge execution subsystem: interpreter environments,
  script launching, run history and per-node execution bindings.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).

Non-functional requirements
- Must keep import time fast; heavy submodules are imported lazily by callers.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
