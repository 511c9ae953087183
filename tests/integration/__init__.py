"""
docforge-exec — module skeleton

File: tests/integration/__init__.py
Last updated: 2026-10-17

Purpose
- Test package marker for subprocess-level CLI contracts.
"""
