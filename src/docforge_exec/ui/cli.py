"""Command-line interface router for docforge-exec."""

from __future__ import annotations

import argparse
import json
import queue
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from docforge_exec.config import ConfigLoadError, ConfigValidationError, load_config
from docforge_exec.domain.models import (
    ConsoleMode,
    Environment,
    ExecutionMode,
    PackageSpec,
    Run,
    RunStatus,
    ScriptLanguage,
)
from docforge_exec.main import ExitCode
from docforge_exec.observability.events import LogEvent, StatusEvent
from docforge_exec.observability.logging import configure_logging
from docforge_exec.runtime.service import ExecutionService
from docforge_exec.ui.render import CLIRenderer, create_renderer

ServiceFactory = Callable[[Mapping[str, Any]], ExecutionService]

_MANIFEST_KEYS = frozenset(
    {"name", "interpreter", "packages", "variables", "working_directory", "description", "managed"}
)
_EVENT_POLL_SECONDS = 0.25


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = int(ExitCode.CONFIG_ERROR)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="docforge-exec",
        description=(
            "docforge-exec: interpreter environments and script runs for DocForge nodes.\n\n"
            "Common workflows:\n"
            "  docforge-exec interpreters              List Python interpreters on this host\n"
            "  docforge-exec env create --manifest env.yaml\n"
            "  docforge-exec run NODE python script.py Run a script and stream its output\n"
            "  docforge-exec runs NODE                 Show recent runs for a node\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./docforge-exec.toml if present).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    common.add_argument(
        "--verbose", "-v", action="store_true", default=False, help="Show detailed output."
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    interpreters = subparsers.add_parser(
        "interpreters", parents=[common], help="List Python interpreters found on this host"
    )
    interpreters.set_defaults(handler=_cmd_interpreters)

    # env -----------------------------------------------------------------
    env_parser = subparsers.add_parser("env", help="Manage interpreter environments")
    env_sub = env_parser.add_subparsers(dest="env_command", required=True)

    env_list = env_sub.add_parser("list", parents=[common], help="List environments")
    env_list.set_defaults(handler=_cmd_env_list)

    env_show = env_sub.add_parser("show", parents=[common], help="Show one environment")
    env_show.add_argument("env_id")
    env_show.set_defaults(handler=_cmd_env_show)

    env_create = env_sub.add_parser(
        "create",
        parents=[common],
        help="Create an environment",
        description=(
            "Create a managed virtual environment (or register an existing interpreter).\n\n"
            "Examples:\n"
            "  docforge-exec env create --name analysis --interpreter /usr/bin/python3 \\\n"
            "      --package requests --package numpy==1.26.4\n"
            "  docforge-exec env create --manifest env.yaml\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    env_create.add_argument("--manifest", default=None, help="YAML environment manifest")
    env_create.add_argument("--name", default=None)
    env_create.add_argument("--interpreter", default=None, help="Base interpreter path")
    env_create.add_argument("--package", action="append", default=[], dest="packages")
    env_create.add_argument("--var", action="append", default=[], dest="variables", metavar="KEY=VALUE")
    env_create.add_argument("--working-directory", default=None)
    env_create.add_argument("--description", default=None)
    env_create.add_argument(
        "--unmanaged",
        action="store_true",
        help="Register the interpreter as-is instead of creating a virtual environment",
    )
    env_create.set_defaults(handler=_cmd_env_create)

    env_update = env_sub.add_parser("update", parents=[common], help="Update an environment")
    env_update.add_argument("env_id")
    env_update.add_argument("--name", default=None)
    env_update.add_argument("--package", action="append", default=None, dest="packages")
    env_update.add_argument("--clear-packages", action="store_true")
    env_update.add_argument("--var", action="append", default=None, dest="variables", metavar="KEY=VALUE")
    env_update.add_argument("--clear-vars", action="store_true")
    env_update.add_argument("--working-directory", default=None)
    env_update.add_argument("--description", default=None)
    env_update.set_defaults(handler=_cmd_env_update)

    env_delete = env_sub.add_parser("delete", parents=[common], help="Delete an environment")
    env_delete.add_argument("env_id")
    env_delete.set_defaults(handler=_cmd_env_delete)

    # node ----------------------------------------------------------------
    node_parser = subparsers.add_parser("node", help="Per-node execution settings")
    node_sub = node_parser.add_subparsers(dest="node_command", required=True)

    node_show = node_sub.add_parser("show", parents=[common], help="Show node settings")
    node_show.add_argument("node_id")
    node_show.add_argument("--language", default="python", choices=_language_choices())
    node_show.set_defaults(handler=_cmd_node_show)

    node_set = node_sub.add_parser("set", parents=[common], help="Update node settings")
    node_set.add_argument("node_id")
    node_set.add_argument("--language", default="python", choices=_language_choices())
    node_set.add_argument("--env", dest="env_id", default=None, help="Pin a Python environment")
    node_set.add_argument("--auto", action="store_true", help="Use auto-detection (Python)")
    node_set.add_argument("--var", action="append", default=[], dest="variables", metavar="KEY=VALUE")
    node_set.add_argument("--working-directory", default=None)
    node_set.add_argument("--executable", default=None)
    node_set.set_defaults(handler=_cmd_node_set)

    node_ensure = node_sub.add_parser(
        "ensure", parents=[common], help="Resolve or provision the node's Python environment"
    )
    node_ensure.add_argument("node_id")
    node_ensure.add_argument("--python-version", default=None)
    node_ensure.set_defaults(handler=_cmd_node_ensure)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run a script for a node",
        description=(
            "Run a script file for a node and stream its output. Ctrl-C cancels the run.\n\n"
            "Examples:\n"
            "  docforge-exec run notes-1 shell build.sh\n"
            "  docforge-exec run notes-1 python analysis.py --env env-01J...\n"
            "  docforge-exec run notes-1 powershell check.ps1 --test\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument("node_id")
    run_parser.add_argument("language", choices=_language_choices())
    run_parser.add_argument("file")
    run_parser.add_argument(
        "--console-mode", default=None, choices=[mode.value for mode in ConsoleMode]
    )
    run_parser.add_argument("--env", dest="env_id", default=None)
    run_parser.add_argument("--python-version", default=None)
    run_parser.add_argument("--var", action="append", default=None, dest="variables", metavar="KEY=VALUE")
    run_parser.add_argument("--working-directory", default=None)
    run_parser.add_argument("--executable", default=None)
    run_parser.add_argument("--test", action="store_true", help="Syntax check only")
    run_parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Print the run id up front instead of streaming output; exit 0 whatever the outcome",
    )
    run_parser.set_defaults(handler=_cmd_run)

    runs_parser = subparsers.add_parser("runs", parents=[common], help="Recent runs for a node")
    runs_parser.add_argument("node_id")
    runs_parser.add_argument("--language", default=None, choices=_language_choices())
    runs_parser.add_argument("--limit", type=int, default=None)
    runs_parser.set_defaults(handler=_cmd_runs)

    logs_parser = subparsers.add_parser("logs", parents=[common], help="Log lines of a run")
    logs_parser.add_argument("run_id")
    logs_parser.set_defaults(handler=_cmd_logs)

    return parser


def run_cli(
    argv: Sequence[str] | None = None,
    *,
    service_factory: ServiceFactory | None = None,
) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        config = _load_effective_config(namespace)
        observability = config["observability"]
        configure_logging(level=observability["log_level"], fmt=observability["log_format"])
        factory = ExecutionService.from_config if service_factory is None else service_factory
        service = factory(config)
        try:
            result = handler(namespace, service)
        finally:
            service.shutdown()
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_interpreters(args: argparse.Namespace, service: ExecutionService) -> int:
    interpreters = service.detect_interpreters()
    if _flag(args, "json"):
        _emit_json({"command": "interpreters", "interpreters": [i.to_dict() for i in interpreters]})
        return 0

    renderer = _get_renderer(args)
    renderer.table(
        ("VERSION", "DEFAULT", "PATH"),
        [(i.version, "*" if i.is_default else "", i.path) for i in interpreters],
        empty="No Python interpreters found.",
    )
    return 0


def _cmd_env_list(args: argparse.Namespace, service: ExecutionService) -> int:
    environments = service.list_environments()
    if _flag(args, "json"):
        _emit_json({"command": "env list", "environments": [e.to_dict() for e in environments]})
        return 0

    renderer = _get_renderer(args)
    renderer.table(
        ("ID", "NAME", "VERSION", "MANAGED", "PACKAGES"),
        [
            (
                env.env_id,
                env.name,
                env.python_version,
                "yes" if env.managed else "no",
                str(len(env.packages)),
            )
            for env in environments
        ],
        empty="No environments.",
    )
    return 0


def _cmd_env_show(args: argparse.Namespace, service: ExecutionService) -> int:
    environment = service.get_environment(_require_str(args.env_id, "env_id"))
    _emit_environment(args, "env show", environment)
    return 0


def _cmd_env_create(args: argparse.Namespace, service: ExecutionService) -> int:
    manifest: dict[str, Any] = {}
    manifest_path = _optional_str(args.manifest)
    if manifest_path is not None:
        manifest = load_environment_manifest(Path(manifest_path))

    name = _optional_str(args.name) or manifest.get("name")
    interpreter = _optional_str(args.interpreter) or manifest.get("interpreter")
    if not name:
        raise CLIError("environment name is required (--name or manifest 'name')")
    if not interpreter:
        raise CLIError("base interpreter is required (--interpreter or manifest 'interpreter')")

    packages = [*manifest.get("packages", []), *_package_list(args.packages)]
    variables = {**manifest.get("variables", {}), **_parse_assignments(args.variables)}
    environment = service.create_environment(
        name=name,
        base_interpreter=interpreter,
        packages=packages,
        environment_variables=variables,
        working_directory=_optional_str(args.working_directory) or manifest.get("working_directory"),
        description=_optional_str(args.description) or manifest.get("description"),
        managed=not args.unmanaged and bool(manifest.get("managed", True)),
    )
    _emit_environment(args, "env create", environment)
    return 0


def _cmd_env_update(args: argparse.Namespace, service: ExecutionService) -> int:
    packages: list[PackageSpec] | None = None
    if args.clear_packages:
        packages = []
    elif args.packages is not None:
        packages = _package_list(args.packages)

    variables: dict[str, str] | None = None
    if args.clear_vars:
        variables = {}
    elif args.variables is not None:
        variables = _parse_assignments(args.variables)

    environment = service.update_environment(
        _require_str(args.env_id, "env_id"),
        name=_optional_str(args.name),
        packages=packages,
        environment_variables=variables,
        working_directory=args.working_directory,
        description=args.description,
    )
    _emit_environment(args, "env update", environment)
    return 0


def _cmd_env_delete(args: argparse.Namespace, service: ExecutionService) -> int:
    env_id = _require_str(args.env_id, "env_id")
    deleted = service.delete_environment(env_id)
    if _flag(args, "json"):
        _emit_json({"command": "env delete", "env_id": env_id, "deleted": deleted})
        return 0
    renderer = _get_renderer(args)
    renderer.text(f"Deleted {env_id}" if deleted else f"No environment {env_id}; nothing to delete.")
    return 0


def _cmd_node_show(args: argparse.Namespace, service: ExecutionService) -> int:
    binding = service.get_node_settings(_require_str(args.node_id, "node_id"), args.language)
    if _flag(args, "json"):
        _emit_json({"command": "node show", "binding": binding.to_dict()})
        return 0
    _render_binding(_get_renderer(args), binding.to_dict())
    return 0


def _cmd_node_set(args: argparse.Namespace, service: ExecutionService) -> int:
    node_id = _require_str(args.node_id, "node_id")
    language = ScriptLanguage(args.language)
    if language is ScriptLanguage.PYTHON:
        env_id = _optional_str(args.env_id)
        if env_id is None and not args.auto:
            raise CLIError("python settings need --env ENV_ID or --auto")
        binding = service.set_node_settings(node_id, env_id, auto_detect=bool(args.auto))
    else:
        binding = service.set_script_settings(
            node_id,
            language,
            environment_variables=_parse_assignments(args.variables),
            working_directory=_optional_str(args.working_directory),
            executable=_optional_str(args.executable),
        )

    if _flag(args, "json"):
        _emit_json({"command": "node set", "binding": binding.to_dict()})
        return 0
    _render_binding(_get_renderer(args), binding.to_dict())
    return 0


def _cmd_node_ensure(args: argparse.Namespace, service: ExecutionService) -> int:
    defaults = service.defaults
    python_version = _optional_str(args.python_version)
    if python_version is not None:
        defaults = replace(defaults, target_python_version=python_version)
    environment = service.ensure_node_environment(_require_str(args.node_id, "node_id"), defaults)
    _emit_environment(args, "node ensure", environment)
    return 0


def _cmd_run(args: argparse.Namespace, service: ExecutionService) -> int:
    node_id = _require_str(args.node_id, "node_id")
    language = ScriptLanguage(args.language)
    code = _read_script(Path(args.file))
    mode = ExecutionMode.TEST if args.test else ExecutionMode.RUN
    variables = None if args.variables is None else _parse_assignments(args.variables)

    events: queue.Queue[LogEvent | StatusEvent] = queue.Queue()
    subscription = service.events.subscribe(on_log=events.put, on_status=events.put)
    try:
        run = _launch(args, service, node_id, language, code, mode, variables)
        streaming = not _flag(args, "json") and not args.no_wait
        if args.no_wait and not _flag(args, "json"):
            print(run.run_id, flush=True)
        run = _follow_run(service, run, events, _get_renderer(args) if streaming else None)
    finally:
        subscription.close()

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "run",
                "run": run.to_dict(),
                "logs": [entry.to_dict() for entry in service.get_run_logs(run.run_id)],
            }
        )
    elif not args.no_wait:
        renderer = _get_renderer(args)
        renderer.section(f"Run {run.run_id} {run.status.value}")
        if renderer.verbose:
            renderer.run_summary(run)

    if args.no_wait or run.status is RunStatus.SUCCEEDED:
        return int(ExitCode.SUCCESS)
    return int(ExitCode.RUN_FAILED)


def _cmd_runs(args: argparse.Namespace, service: ExecutionService) -> int:
    node_id = _require_str(args.node_id, "node_id")
    runs = service.get_runs_for_node(node_id, language=args.language, limit=args.limit)
    if _flag(args, "json"):
        _emit_json({"command": "runs", "node_id": node_id, "runs": [run.to_dict() for run in runs]})
        return 0

    renderer = _get_renderer(args)
    renderer.table(
        ("RUN", "LANGUAGE", "STATUS", "EXIT", "STARTED"),
        [
            (
                run.run_id,
                run.language.value,
                run.status.value,
                "" if run.exit_code is None else str(run.exit_code),
                run.started_at.isoformat(),
            )
            for run in runs
        ],
        empty=f"No runs for {node_id}.",
    )
    return 0


def _cmd_logs(args: argparse.Namespace, service: ExecutionService) -> int:
    run_id = _require_str(args.run_id, "run_id")
    run = service.get_run(run_id)
    if run is None:
        raise CLIError(f"Run not found: {run_id}")
    entries = service.get_run_logs(run_id)
    if _flag(args, "json"):
        _emit_json(
            {"command": "logs", "run": run.to_dict(), "logs": [entry.to_dict() for entry in entries]}
        )
        return 0

    renderer = _get_renderer(args)
    renderer.run_summary(run)
    renderer.section("Log")
    for entry in entries:
        renderer.log_entry(entry)
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def load_environment_manifest(path: Path) -> dict[str, Any]:
    """Read a YAML environment manifest into ``create_environment`` keyword values."""

    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except OSError as exc:
        raise CLIError(f"unable to read manifest {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise CLIError(f"invalid YAML in manifest {path}: {exc}") from exc

    if not isinstance(raw, Mapping):
        raise CLIError(f"manifest {path} must contain a mapping")
    unknown = sorted(str(key) for key in raw if key not in _MANIFEST_KEYS)
    if unknown:
        raise CLIError(f"manifest {path}: unknown field(s): {', '.join(unknown)}")

    manifest: dict[str, Any] = {}
    for key in ("name", "interpreter", "working_directory", "description"):
        value = raw.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            raise CLIError(f"manifest {path}: {key} must be a non-empty string")
        manifest[key] = value.strip()

    managed = raw.get("managed", True)
    if not isinstance(managed, bool):
        raise CLIError(f"manifest {path}: managed must be true or false")
    manifest["managed"] = managed

    try:
        manifest["packages"] = _manifest_packages(raw.get("packages") or [])
    except ValueError as exc:
        raise CLIError(f"manifest {path}: {exc}") from exc

    variables = raw.get("variables") or {}
    if not isinstance(variables, Mapping):
        raise CLIError(f"manifest {path}: variables must be a mapping")
    manifest["variables"] = {
        str(key): _manifest_scalar(value) for key, value in variables.items() if value is not None
    }
    return manifest


def _manifest_packages(raw: object) -> list[PackageSpec]:
    if not isinstance(raw, list):
        raise ValueError("packages must be a list")
    packages: list[PackageSpec] = []
    for item in raw:
        if isinstance(item, str):
            packages.append(PackageSpec.parse(item))
        elif isinstance(item, Mapping):
            version = item.get("version")
            packages.append(
                PackageSpec(
                    name=str(item.get("name", "")),
                    version=None if version is None else str(version),
                )
            )
        else:
            raise ValueError(f"unsupported package entry: {item!r}")
    return packages


def _manifest_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _launch(
    args: argparse.Namespace,
    service: ExecutionService,
    node_id: str,
    language: ScriptLanguage,
    code: str,
    mode: ExecutionMode,
    variables: dict[str, str] | None,
) -> Run:
    if language is ScriptLanguage.PYTHON and _optional_str(args.env_id) is None:
        defaults = service.defaults
        python_version = _optional_str(args.python_version)
        if python_version is not None:
            defaults = replace(defaults, target_python_version=python_version)
        return service.run_python_for_node(
            node_id,
            code,
            defaults=defaults,
            console_mode=args.console_mode,
            environment_variables=variables,
            mode=mode,
        )
    return service.run_script(
        node_id,
        language,
        code,
        console_mode=args.console_mode,
        env_id=_optional_str(args.env_id),
        environment_variables=variables,
        working_directory=_optional_str(args.working_directory),
        executable=_optional_str(args.executable),
        mode=mode,
    )


def _follow_run(
    service: ExecutionService,
    run: Run,
    events: queue.Queue[LogEvent | StatusEvent],
    renderer: CLIRenderer | None,
) -> Run:
    """Drain events for ``run`` until its status event; Ctrl-C requests cancellation."""

    run_id = run.run_id
    while True:
        try:
            try:
                event = events.get(timeout=_EVENT_POLL_SECONDS)
            except queue.Empty:
                current = service.get_run(run_id)
                if current is not None and current.is_terminal and events.empty():
                    break
                continue
            if event.run_id != run_id:
                continue
            if isinstance(event, StatusEvent):
                break
            if renderer is not None:
                renderer.log_entry(event.entry)
        except KeyboardInterrupt:
            if service.cancel_run(run_id):
                print("Cancelling run...", file=sys.stderr)

    service.wait_for_run(run_id)
    finished = service.get_run(run_id)
    return run if finished is None else finished


def _emit_environment(args: argparse.Namespace, command: str, environment: Environment) -> None:
    if _flag(args, "json"):
        _emit_json({"command": command, "environment": environment.to_dict()})
        return

    renderer = _get_renderer(args)
    renderer.kv("Environment", environment.env_id)
    renderer.kv("Name", environment.name)
    renderer.kv("Python", f"{environment.python_version} ({environment.python_executable})")
    renderer.kv("Managed", "yes" if environment.managed else "no")
    renderer.kv("Working directory", environment.working_directory)
    renderer.kv("Description", environment.description)
    requirements = environment.config.requirements()
    renderer.kv("Packages", ", ".join(requirements) if requirements else None)
    for key, value in sorted(environment.environment_variables.items()):
        renderer.text(f"  {key}={value}")


def _render_binding(renderer: CLIRenderer, binding: Mapping[str, object]) -> None:
    for key in ("node_id", "language", "env_id", "auto_detect", "last_run_id"):
        renderer.kv(key, binding.get(key))
    if binding.get("language") != ScriptLanguage.PYTHON.value:
        renderer.kv("working_directory", binding.get("working_directory"))
        renderer.kv("executable", binding.get("executable"))
        variables = binding.get("environment_variables")
        if isinstance(variables, Mapping):
            for key in sorted(variables):
                renderer.text(f"  {key}={variables[key]}")


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=_flag(args, "verbose"))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    try:
        return load_config(config_path)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc)) from exc


def _read_script(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"unable to read script {path}: {exc}") from exc


def _parse_assignments(values: Sequence[str] | None) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for item in values or ():
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            raise CLIError(f"invalid assignment {item!r}; expected KEY=VALUE")
        parsed[key.strip()] = value
    return parsed


def _package_list(values: Sequence[str] | None) -> list[PackageSpec]:
    try:
        return [PackageSpec.parse(item) for item in values or () if item.strip()]
    except ValueError as exc:
        raise CLIError(str(exc)) from exc


def _language_choices() -> list[str]:
    return [language.value for language in ScriptLanguage]


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string")
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(f"invalid {name}: value cannot be empty")
    return cleaned


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument")
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = [
    "CLIError",
    "ServiceFactory",
    "build_parser",
    "load_environment_manifest",
    "main",
    "run_cli",
]
