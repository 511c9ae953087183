"""In-process CLI tests over a temporary config, state DB and the running interpreter."""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest

from docforge_exec.domain.models import InterpreterInfo
from docforge_exec.observability.logging import reset_logging
from docforge_exec.runtime.errors import EnvironmentNotFoundError, NoInterpreterError
from docforge_exec.runtime.service import ExecutionService
from docforge_exec.ui.cli import CLIError, build_parser, load_environment_manifest, run_cli

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell scripts")

_VERSION = ".".join(str(part) for part in sys.version_info[:3])


@pytest.fixture(autouse=True)
def _isolated_logging() -> Iterator[None]:
    yield
    reset_logging()


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "docforge-exec.toml"
    path.write_text(
        "\n".join(
            [
                "[meta]",
                "schema_version = 1",
                "[paths]",
                'state_db = "state/exec.sqlite3"',
                'environments_root = "envs"',
                "[execution]",
                'default_python_version = "3.11"',
                "base_packages = []",
                'console_mode = "in-app"',
                "cancel_grace_seconds = 2.0",
                "version_probe_timeout_seconds = 10.0",
                "provisioning_timeout_seconds = 60.0",
                "history_limit = 20",
                "[observability]",
                'log_level = "WARNING"',
                'log_format = "json"',
            ]
        ),
        encoding="utf-8",
    )
    return path


def _factory(interpreters: list[InterpreterInfo] | None = None):
    detected = (
        [InterpreterInfo(sys.executable, _VERSION, f"Python {_VERSION}", is_default=True)]
        if interpreters is None
        else interpreters
    )

    def _build(config: Mapping[str, Any]) -> ExecutionService:
        return ExecutionService.from_config(config, interpreter_detector=lambda: list(detected))

    return _build


def _cli(config_path: Path, *args: str, interpreters: list[InterpreterInfo] | None = None) -> int:
    return run_cli([*args, "--config", str(config_path)], service_factory=_factory(interpreters))


def _json(capsys: pytest.CaptureFixture[str]) -> dict[str, Any]:
    out = capsys.readouterr().out.strip().splitlines()
    payload = json.loads(out[-1])
    assert isinstance(payload, dict)
    return payload


def _create_system_env(config_path: Path, capsys: pytest.CaptureFixture[str], *extra: str) -> str:
    code = _cli(
        config_path,
        "env",
        "create",
        "--name",
        "system",
        "--interpreter",
        sys.executable,
        "--unmanaged",
        "--json",
        *extra,
    )
    assert code == 0
    return str(_json(capsys)["environment"]["env_id"])


def _write_script(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_parser_requires_a_command() -> None:
    parser = build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args([])
    namespace = parser.parse_args(["run", "node-1", "shell", "a.sh", "--no-wait", "--var", "A=1"])
    assert namespace.variables == ["A=1"]
    assert namespace.no_wait is True


def test_interpreters_json(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _cli(config_path, "interpreters", "--json") == 0
    payload = _json(capsys)
    assert payload["command"] == "interpreters"
    assert payload["interpreters"][0]["path"] == sys.executable


def test_interpreters_table_when_none_found(
    config_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _cli(config_path, "interpreters", interpreters=[]) == 0
    assert "No Python interpreters found." in capsys.readouterr().out


def test_env_create_unmanaged_with_flags(
    config_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = _cli(
        config_path,
        "env",
        "create",
        "--name",
        "system",
        "--interpreter",
        sys.executable,
        "--unmanaged",
        "--package",
        "requests==2.31.0",
        "--var",
        "MODE=test",
        "--description",
        "host python",
        "--json",
    )

    assert code == 0
    payload = _json(capsys)
    environment = payload["environment"]
    assert payload["command"] == "env create"
    assert environment["managed"] is False
    assert environment["python_executable"] == sys.executable
    assert environment["python_version"] == _VERSION
    assert environment["description"] == "host python"
    assert environment["config"]["environment_variables"] == {"MODE": "test"}
    assert environment["config"]["packages"] == [{"name": "requests", "version": "2.31.0"}]


def test_env_create_from_manifest(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    manifest = tmp_path / "env.yaml"
    manifest.write_text(
        "\n".join(
            [
                "name: from-manifest",
                f"interpreter: {json.dumps(sys.executable)}",
                "managed: false",
                "packages:",
                "  - requests",
                "  - name: numpy",
                "    version: 1.26.4",
                "variables:",
                "  DEBUG: true",
                "  WORKERS: 4",
            ]
        ),
        encoding="utf-8",
    )

    code = _cli(config_path, "env", "create", "--manifest", str(manifest), "--var", "WORKERS=8", "--json")

    assert code == 0
    environment = _json(capsys)["environment"]
    assert environment["name"] == "from-manifest"
    assert environment["managed"] is False
    assert environment["config"]["environment_variables"] == {"DEBUG": "true", "WORKERS": "8"}
    assert [item["name"] for item in environment["config"]["packages"]] == ["requests", "numpy"]


def test_manifest_validation_errors(tmp_path: Path) -> None:
    unknown = tmp_path / "unknown.yaml"
    unknown.write_text("name: x\nflavour: vanilla\n", encoding="utf-8")
    with pytest.raises(CLIError, match=r"unknown field\(s\): flavour"):
        load_environment_manifest(unknown)

    not_mapping = tmp_path / "list.yaml"
    not_mapping.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(CLIError, match="must contain a mapping"):
        load_environment_manifest(not_mapping)

    bad_yaml = tmp_path / "bad.yaml"
    bad_yaml.write_text("name: [unclosed\n", encoding="utf-8")
    with pytest.raises(CLIError, match="invalid YAML"):
        load_environment_manifest(bad_yaml)

    bad_managed = tmp_path / "managed.yaml"
    bad_managed.write_text("managed: sometimes\n", encoding="utf-8")
    with pytest.raises(CLIError, match="managed must be true or false"):
        load_environment_manifest(bad_managed)

    with pytest.raises(CLIError, match="unable to read manifest"):
        load_environment_manifest(tmp_path / "missing.yaml")


def test_env_create_requires_name_and_interpreter(
    config_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _cli(config_path, "env", "create", "--interpreter", sys.executable) == 2
    assert "environment name is required" in capsys.readouterr().err

    assert _cli(config_path, "env", "create", "--name", "x") == 2
    assert "base interpreter is required" in capsys.readouterr().err


def test_env_list_show_update_delete(
    config_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_id = _create_system_env(config_path, capsys)

    assert _cli(config_path, "env", "list", "--json") == 0
    assert [item["env_id"] for item in _json(capsys)["environments"]] == [env_id]

    assert _cli(config_path, "env", "list") == 0
    listing = capsys.readouterr().out
    assert env_id in listing
    assert "MANAGED" in listing

    assert _cli(config_path, "env", "update", env_id, "--name", "renamed", "--var", "A=1", "--json") == 0
    updated = _json(capsys)["environment"]
    assert updated["name"] == "renamed"
    assert updated["config"]["environment_variables"] == {"A": "1"}

    assert _cli(config_path, "env", "update", env_id, "--clear-vars", "--json") == 0
    assert _json(capsys)["environment"]["config"]["environment_variables"] == {}

    assert _cli(config_path, "env", "show", env_id) == 0
    shown = capsys.readouterr().out
    assert f"Environment: {env_id}" in shown
    assert "Name: renamed" in shown
    assert "Managed: no" in shown

    assert _cli(config_path, "env", "delete", env_id, "--json") == 0
    assert _json(capsys) == {"command": "env delete", "deleted": True, "env_id": env_id}

    assert _cli(config_path, "env", "delete", env_id) == 0
    assert "nothing to delete" in capsys.readouterr().out


def test_env_show_missing_propagates(config_path: Path) -> None:
    with pytest.raises(EnvironmentNotFoundError):
        _cli(config_path, "env", "show", "env-01ARZ3NDEKTSV4RRFFQ69G5FAV")


def test_invalid_assignment_is_a_usage_error(
    config_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = _cli(
        config_path, "node", "set", "node-1", "--language", "shell", "--var", "NOEQUALS"
    )
    assert code == 2
    assert "expected KEY=VALUE" in capsys.readouterr().err


def test_node_settings_round_trip(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    env_id = _create_system_env(config_path, capsys)

    assert _cli(config_path, "node", "set", "node-1") == 2
    assert "--env ENV_ID or --auto" in capsys.readouterr().err

    assert _cli(config_path, "node", "set", "node-1", "--env", env_id, "--json") == 0
    binding = _json(capsys)["binding"]
    assert binding["env_id"] == env_id
    assert binding["auto_detect"] is False

    assert _cli(
        config_path,
        "node",
        "set",
        "node-1",
        "--language",
        "shell",
        "--var",
        "GREETING=hi",
        "--executable",
        "/bin/sh",
    ) == 0
    rendered = capsys.readouterr().out
    assert "executable: /bin/sh" in rendered
    assert "GREETING=hi" in rendered

    assert _cli(config_path, "node", "show", "node-1", "--json") == 0
    assert _json(capsys)["binding"]["env_id"] == env_id


def test_node_ensure_reuses_matching_environment(
    config_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_id = _create_system_env(config_path, capsys)
    major_minor = ".".join(_VERSION.split(".")[:2])

    code = _cli(config_path, "node", "ensure", "node-1", "--python-version", major_minor, "--json")

    assert code == 0
    payload = _json(capsys)
    assert payload["command"] == "node ensure"
    assert payload["environment"]["env_id"] == env_id


def test_node_ensure_without_interpreters_propagates(config_path: Path) -> None:
    with pytest.raises(NoInterpreterError):
        _cli(config_path, "node", "ensure", "node-1", "--python-version", "2.1", interpreters=[])


@posix_only
def test_run_shell_streams_output_and_succeeds(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    script = _write_script(tmp_path, "hello.sh", "echo hello\necho oops 1>&2\n")

    code = _cli(config_path, "run", "node-1", "shell", str(script), "--executable", "/bin/sh")

    assert code == 0
    captured = capsys.readouterr()
    assert "hello" in captured.out.splitlines()
    assert "oops" in captured.err
    assert "succeeded" in captured.out


@posix_only
def test_run_failure_returns_run_failed(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    script = _write_script(tmp_path, "fail.sh", "exit 3\n")

    code = _cli(config_path, "run", "node-1", "shell", str(script), "--executable", "/bin/sh", "--json")

    assert code == 1
    payload = _json(capsys)
    assert payload["run"]["status"] == "failed"
    assert payload["run"]["exit_code"] == 3
    assert payload["logs"][-1]["message"] == "Process exited with code 3."


@posix_only
def test_run_no_wait_prints_run_id_and_exits_zero(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    script = _write_script(tmp_path, "fail.sh", "echo hidden\nexit 5\n")

    code = _cli(
        config_path, "run", "node-1", "shell", str(script), "--executable", "/bin/sh", "--no-wait"
    )

    assert code == 0
    out = capsys.readouterr().out.strip().splitlines()
    assert out[-1].startswith("run-")
    assert "hidden" not in out


@posix_only
def test_run_python_with_pinned_environment(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_id = _create_system_env(config_path, capsys, "--var", "WHO=docforge")
    script = _write_script(tmp_path, "hello.py", "import os\nprint('hi', os.environ['WHO'])\n")

    code = _cli(config_path, "run", "node-1", "python", str(script), "--env", env_id, "--json")

    assert code == 0
    payload = _json(capsys)
    assert payload["command"] == "run"
    assert payload["run"]["status"] == "succeeded"
    assert payload["run"]["env_id"] == env_id
    assert "hi docforge" in [entry["message"] for entry in payload["logs"]]

    assert _cli(config_path, "runs", "node-1", "--json") == 0
    history = _json(capsys)
    assert history["node_id"] == "node-1"
    assert [run["run_id"] for run in history["runs"]] == [payload["run"]["run_id"]]

    assert _cli(config_path, "logs", payload["run"]["run_id"]) == 0
    rendered = capsys.readouterr().out
    assert "Status: succeeded" in rendered
    assert "hi docforge" in rendered


@posix_only
def test_run_python_test_mode_checks_syntax(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_id = _create_system_env(config_path, capsys)
    script = _write_script(tmp_path, "broken.py", "def broken(:\n")

    code = _cli(config_path, "run", "node-1", "python", str(script), "--env", env_id, "--test", "--json")

    assert code == 1
    assert _json(capsys)["run"]["status"] == "failed"


def test_run_missing_script_file(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = _cli(config_path, "run", "node-1", "shell", str(tmp_path / "nope.sh"))
    assert code == 2
    assert "unable to read script" in capsys.readouterr().err


def test_logs_for_unknown_run(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _cli(config_path, "logs", "run-01ARZ3NDEKTSV4RRFFQ69G5FAV") == 2
    assert "Run not found: run-01ARZ3NDEKTSV4RRFFQ69G5FAV" in capsys.readouterr().err


def test_runs_table_when_empty(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _cli(config_path, "runs", "node-9") == 0
    assert "No runs for node-9." in capsys.readouterr().out


def test_bad_config_is_a_config_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    broken = tmp_path / "broken.toml"
    broken.write_text("[execution]\nhistory_limit = 0\n", encoding="utf-8")

    assert run_cli(["env", "list", "--config", str(broken)]) == 2
    assert "execution.history_limit" in capsys.readouterr().err
