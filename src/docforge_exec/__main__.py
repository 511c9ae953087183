"""Module entrypoint for ``python -m docforge_exec``."""

from __future__ import annotations

from docforge_exec.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
