"""
docforge-exec — unit tests for config schema validation

File: tests/unit/config/test_schema.py
Last updated: 2026-10-17

Purpose
- Validate strict config schema behavior and structured errors.

What this test file should cover
- Validates the repository's sample docforge-exec.toml successfully.
- Rejects unknown keys and invalid types with actionable paths.
- Reports schema version mismatches with migration guidance.
- Derives environment defaults from validated config.

Functional requirements
- No network usage.

Non-functional requirements
- Deterministic and fast.
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from pathlib import Path

import pytest

from docforge_exec.config.schema import (
    ConfigSchemaVersion,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    execution_defaults,
    merge_config,
    migration_guidance,
    validate_config,
)
from docforge_exec.domain.models import EnvironmentDefaults, PackageSpec

REPO_ROOT = Path(__file__).resolve().parents[3]


def _load_toml(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    assert isinstance(data, dict)
    return data


def _as_object_dict(value: object) -> dict[str, object]:
    assert isinstance(value, Mapping)
    normalized: dict[str, object] = {}
    for key, item in value.items():
        assert isinstance(key, str)
        normalized[key] = item
    return normalized


def _issue_paths(config: Mapping[str, object]) -> set[str]:
    return {issue.path for issue in validate_config(config).issues}


def test_repo_config_validates_successfully() -> None:
    config = _load_toml(REPO_ROOT / "docforge-exec.toml")

    result = validate_config(config)

    assert result.is_valid
    assert result.config is not None
    assert result.config["meta"]["schema_version"] == ConfigSchemaVersion
    assert result.config["execution"]["default_python_version"] == "3.11"


def test_defaults_are_valid_and_copied() -> None:
    first = default_config()
    first["execution"]["base_packages"].append("mutated")

    second = default_config()
    assert second["execution"]["base_packages"] == []
    assert validate_config(second).is_valid


def test_unknown_key_rejection_is_explicit() -> None:
    config = _load_toml(REPO_ROOT / "docforge-exec.toml")
    execution = _as_object_dict(config["execution"])
    execution["retries"] = 3
    config["execution"] = execution
    config["providers"] = {}

    paths = _issue_paths(config)

    assert "execution.retries" in paths
    assert "providers" in paths


def test_type_validation_reports_structured_paths() -> None:
    config = default_config()
    broken = merge_config(
        config,
        {
            "execution": {
                "history_limit": "twenty",
                "cancel_grace_seconds": 0,
                "console_mode": "popup",
                "base_packages": ["requests", "", "==1.0"],
            },
            "observability": {"log_level": "TRACE"},
            "paths": {"state_db": "  "},
        },
    )

    result = validate_config(broken)

    assert not result.is_valid
    assert result.config is None
    messages = {issue.path: issue.message for issue in result.issues}
    assert messages["execution.history_limit"] == "expected integer, got str"
    assert messages["execution.cancel_grace_seconds"] == "must be > 0"
    assert messages["execution.console_mode"].startswith("invalid value 'popup'")
    assert messages["execution.base_packages[1]"] == "must not be empty"
    assert "execution.base_packages[2]" in messages
    assert messages["observability.log_level"].startswith("invalid value 'TRACE'")
    assert messages["paths.state_db"] == "must not be empty"


def test_history_limit_bounds() -> None:
    too_big = merge_config(default_config(), {"execution": {"history_limit": 5000}})
    too_small = merge_config(default_config(), {"execution": {"history_limit": 0}})

    assert "execution.history_limit" in _issue_paths(too_big)
    assert "execution.history_limit" in _issue_paths(too_small)


def test_missing_sections_and_fields_are_reported() -> None:
    config = _as_object_dict(default_config())
    del config["observability"]
    execution = _as_object_dict(config["execution"])
    del execution["console_mode"]
    config["execution"] = execution

    paths = _issue_paths(config)

    assert "observability" in paths
    assert "execution.console_mode" in paths


def test_schema_version_mismatch_carries_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": ConfigSchemaVersion + 1}})

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    assert excinfo.value.issues[0].path == "meta.schema_version"
    assert "upgrade the docforge-exec runtime" in str(excinfo.value)
    assert migration_guidance(ConfigSchemaVersion) == "schema version is current"


def test_non_mapping_root_is_rejected() -> None:
    result = validate_config(["not", "a", "mapping"])
    assert not result.is_valid
    assert result.issues[0].path == "<root>"


def test_execution_defaults_from_config() -> None:
    config = assert_valid_config(
        merge_config(
            default_config(),
            {
                "execution": {
                    "default_python_version": "3.12",
                    "base_packages": ["requests==2.31.0", "numpy"],
                }
            },
        )
    )

    assert execution_defaults(config) == EnvironmentDefaults(
        target_python_version="3.12",
        base_packages=(PackageSpec("requests", "2.31.0"), PackageSpec("numpy")),
    )
    assert execution_defaults(assert_valid_config(default_config())).target_python_version is None
