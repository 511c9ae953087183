"""Output rendering for the docforge-exec CLI.

File: src/docforge_exec/ui/render.py
Last updated: 2026-10-17

Purpose
- Provide a thin plain-text rendering layer for CLI output.
- Render run log lines and status lines as they stream in.

Functional requirements
- Plain-text rendering must always work without external dependencies.
- Log lines keep their original text; ERROR lines go to stderr.
"""

from __future__ import annotations

import sys
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from docforge_exec.domain.models import LogEntry, Run


class CLIRenderer:
    """Thin CLI output renderer producing deterministic plain text."""

    def __init__(
        self,
        *,
        verbose: bool = False,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
    ) -> None:
        self.verbose = verbose
        self._stdout = stdout
        self._stderr = stderr

    @property
    def out(self) -> IO[str]:
        return sys.stdout if self._stdout is None else self._stdout

    @property
    def err(self) -> IO[str]:
        return sys.stderr if self._stderr is None else self._stderr

    def kv(self, key: str, value: object) -> None:
        """Print a key: value pair."""

        print(f"{key}: {'-' if value is None else value}", file=self.out)

    def text(self, line: str) -> None:
        print(line, file=self.out)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        print(f"\n{title}", file=self.out)

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        empty: str | None = None,
    ) -> None:
        """Print a formatted ASCII table, or ``empty`` when there are no rows."""

        if not rows:
            if empty:
                self.text(empty)
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        print(_pad(list(headers)), file=self.out)
        print("  ".join("-" * w for w in widths), file=self.out)
        for row in rows:
            print(_pad(list(row)), file=self.out)

    def log_entry(self, entry: LogEntry) -> None:
        """Print one run log line; ERROR lines go to stderr."""

        stream = self.err if entry.level.value == "ERROR" else self.out
        if self.verbose:
            print(f"[{entry.timestamp.isoformat()}] {entry.level.value} {entry.message}", file=stream)
        else:
            print(entry.message, file=stream)
        stream.flush()

    def run_summary(self, run: Run) -> None:
        self.kv("Run", run.run_id)
        self.kv("Node", run.node_id)
        self.kv("Language", run.language.value)
        self.kv("Status", run.status.value)
        self.kv("Environment", run.env_id)
        self.kv("Started", run.started_at.isoformat())
        self.kv("Finished", None if run.finished_at is None else run.finished_at.isoformat())
        self.kv("Exit code", run.exit_code)
        self.kv("Duration (ms)", run.duration_ms)
        if run.error_message:
            self.kv("Error", run.error_message)


def create_renderer(*, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
