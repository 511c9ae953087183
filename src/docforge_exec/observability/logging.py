"""Structured application logging on top of structlog and the stdlib ``logging`` tree.

Library modules only ever call ``structlog.get_logger(__name__)``; nothing is
configured at import time. Entrypoints call ``configure_logging`` once.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import IO, Any, Final, Literal

import structlog

LogFormat = Literal["json", "console"]

LOG_FORMATS: Final[tuple[str, ...]] = ("json", "console")
_ROOT_LOGGER_NAME: Final[str] = "docforge_exec"
_REDACTED_VALUE: Final[str] = "***REDACTED***"
_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
)

_HANDLER_ATTRIBUTE: Final[str] = "_docforge_exec_handler"


def configure_logging(
    *,
    level: int | str = "INFO",
    fmt: LogFormat | str = "console",
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Route structlog and stdlib records under ``docforge_exec`` to ``stream``.

    Calling it again replaces the previously installed handler.
    """

    if fmt not in LOG_FORMATS:
        raise ValueError(f"log format must be one of: {', '.join(LOG_FORMATS)}; got {fmt!r}")
    parsed_level = _parse_log_level(level)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive_fields,
    ]
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    handler = logging.StreamHandler(sys.stderr if stream is None else stream)
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_ATTRIBUTE, True)

    root = logging.getLogger(_ROOT_LOGGER_NAME)
    _remove_installed_handlers(root)
    root.addHandler(handler)
    root.setLevel(parsed_level)
    root.propagate = False
    return handler


def reset_logging() -> None:
    """Detach handlers installed by ``configure_logging`` and restore structlog defaults."""

    _remove_installed_handlers(logging.getLogger(_ROOT_LOGGER_NAME))
    structlog.reset_defaults()


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (e.g. ``run_id``) to every log call in this context."""

    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def redact_sensitive_fields(
    logger: object, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking values whose key looks like a credential."""

    del logger, method_name
    for key in list(event_dict):
        if _requires_redaction_for_key(key):
            event_dict[key] = _REDACTED_VALUE
    return event_dict


def _requires_redaction_for_key(key: str) -> bool:
    lowered = key.lower()
    return any(term in lowered for term in _SENSITIVE_KEY_TERMS)


def _remove_installed_handlers(root: logging.Logger) -> None:
    for existing in list(root.handlers):
        if getattr(existing, _HANDLER_ATTRIBUTE, False):
            root.removeHandler(existing)
            existing.close()


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, bool):
        raise ValueError("log level must be an int or level name")
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {value!r}")
    return resolved


__all__ = [
    "LOG_FORMATS",
    "LogFormat",
    "configure_logging",
    "correlation_scope",
    "redact_sensitive_fields",
    "reset_logging",
]
