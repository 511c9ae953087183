"""Per-(node, language) execution settings and on-demand environment provisioning."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from docforge_exec.domain.models import (
    Environment,
    EnvironmentDefaults,
    InterpreterInfo,
    NodeBinding,
    ScriptLanguage,
)
from docforge_exec.persistence.repositories import NodeBindingRepo
from docforge_exec.runtime.discovery import select_interpreter
from docforge_exec.runtime.environments import EnvironmentStore
from docforge_exec.runtime.errors import ExecutionConfigError, NoInterpreterError

_NODE_LABEL_LENGTH = 6


class NodeBindingService:
    """Reads and writes node bindings and resolves a node's Python environment."""

    def __init__(
        self,
        bindings: NodeBindingRepo,
        store: EnvironmentStore,
        *,
        logger: Any | None = None,
    ) -> None:
        self._bindings = bindings
        self._store = store
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def get_settings(
        self, node_id: str, language: ScriptLanguage | str = ScriptLanguage.PYTHON
    ) -> NodeBinding:
        return self._bindings.get(node_id, language)

    def set_settings(
        self,
        node_id: str,
        env_id: str | None,
        auto_detect: bool,
        language: ScriptLanguage | str = ScriptLanguage.PYTHON,
    ) -> NodeBinding:
        binding = self._bindings.set_environment(
            node_id, language, env_id=env_id, auto_detect=auto_detect
        )
        self._logger.info(
            "node_binding_updated",
            node_id=node_id,
            language=binding.language.value,
            env_id=env_id,
            auto_detect=auto_detect,
        )
        return binding

    def set_script_settings(
        self,
        node_id: str,
        language: ScriptLanguage | str,
        *,
        environment_variables: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        executable: str | None = None,
    ) -> NodeBinding:
        return self._bindings.set_script_settings(
            node_id,
            language,
            environment_variables=dict(environment_variables or {}),
            working_directory=working_directory,
            executable=executable,
        )

    def clear_settings(
        self, node_id: str, language: ScriptLanguage | str = ScriptLanguage.PYTHON
    ) -> bool:
        return self._bindings.clear(node_id, language)

    def record_run(self, node_id: str, language: ScriptLanguage | str, run_id: str) -> None:
        self._bindings.record_run(node_id, language, run_id)

    def ensure_environment_for_node(
        self,
        node_id: str,
        defaults: EnvironmentDefaults,
        interpreters: Sequence[InterpreterInfo],
    ) -> Environment:
        """Return the node's Python environment, pinning or provisioning one if needed.

        Order: the pinned environment when auto-detection is off and it still exists;
        then any known environment whose version starts with the target version;
        finally a new managed environment built from the best matching interpreter.
        """
        binding = self._bindings.get(node_id, ScriptLanguage.PYTHON)
        pinned_id = binding.pinned_env_id
        if pinned_id is not None:
            pinned = self._store.get(pinned_id)
            if pinned is not None:
                return pinned
            self._logger.info("pinned_environment_missing", node_id=node_id, env_id=pinned_id)

        target = defaults.target_python_version
        if not target:
            raise ExecutionConfigError("Python defaults are not configured.")

        for environment in self._store.list():
            if environment.python_version.startswith(target):
                self.set_settings(node_id, environment.env_id, False)
                return environment

        interpreter = select_interpreter(list(interpreters), target)
        if interpreter is None:
            raise NoInterpreterError(
                "No Python interpreters are available to create a virtual environment."
            )

        environment = self._store.create(
            name=f"Node {node_id[:_NODE_LABEL_LENGTH]} ({target})",
            base_interpreter=interpreter.path,
            packages=defaults.base_packages,
            environment_variables=defaults.environment_variables,
            working_directory=defaults.working_directory,
            managed=True,
        )
        self.set_settings(node_id, environment.env_id, False)
        self._logger.info(
            "node_environment_provisioned",
            node_id=node_id,
            env_id=environment.env_id,
            interpreter=interpreter.path,
        )
        return environment


__all__ = ["NodeBindingService"]
