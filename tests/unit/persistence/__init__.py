"""Shared deterministic builders for persistence tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Final

from docforge_exec.domain import ids
from docforge_exec.domain.models import (
    Environment,
    EnvironmentConfig,
    PackageSpec,
    Run,
    RunStatus,
    ScriptLanguage,
)

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017

_BASE_TS: Final[datetime] = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def fixed_now(seed: int) -> datetime:
    return _BASE_TS + timedelta(seconds=seed)


def _randbytes(seed: int):
    byte_value = (seed % 251) + 1

    def _provider(size: int) -> bytes:
        return bytes([byte_value]) * size

    return _provider


def make_environment(
    seed: int,
    *,
    name: str | None = None,
    managed: bool = True,
    packages: tuple[PackageSpec, ...] = (),
    environment_variables: dict[str, str] | None = None,
) -> Environment:
    return Environment(
        env_id=ids.generate_env_id(timestamp_ms=1_700_000_000_000 + seed, randbytes=_randbytes(seed)),
        name=name or f"env-{seed}",
        python_executable=f"/envs/{seed}/bin/python3",
        python_version="3.11.4",
        managed=managed,
        created_at=fixed_now(seed),
        updated_at=fixed_now(seed),
        config=EnvironmentConfig(
            packages=packages,
            environment_variables=environment_variables or {},
            base_interpreter="/usr/bin/python3",
        ),
    )


def make_run(
    seed: int,
    *,
    node_id: str = "node-1",
    language: ScriptLanguage = ScriptLanguage.PYTHON,
    env_id: str | None = None,
) -> Run:
    return Run(
        run_id=ids.generate_run_id(timestamp_ms=1_700_000_000_000 + seed, randbytes=_randbytes(seed)),
        node_id=node_id,
        language=language,
        status=RunStatus.RUNNING,
        started_at=fixed_now(seed),
        env_id=env_id,
    )


__all__ = ["fixed_now", "make_environment", "make_run"]
