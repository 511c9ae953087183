"""Public observability primitives: structured logging and typed run event feeds."""

from docforge_exec.observability.events import (
    DispatchError,
    EventBus,
    LogEvent,
    RunEventFeed,
    RunSubscription,
    StatusEvent,
)
from docforge_exec.observability.logging import (
    LOG_FORMATS,
    configure_logging,
    correlation_scope,
    reset_logging,
)

__all__ = [
    "DispatchError",
    "EventBus",
    "LOG_FORMATS",
    "LogEvent",
    "RunEventFeed",
    "RunSubscription",
    "StatusEvent",
    "configure_logging",
    "correlation_scope",
    "reset_logging",
]
