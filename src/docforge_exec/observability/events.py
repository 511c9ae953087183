"""Typed in-process event buses for run log lines and run status changes."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Final, Generic, Protocol, TypeVar

from docforge_exec.domain.models import LogEntry, RunStatus

_DEFAULT_BUFFER_SIZE: Final[int] = 512
_DEFAULT_ERROR_BUFFER: Final[int] = 1024


class _RunScoped(Protocol):
    @property
    def run_id(self) -> str: ...


TEvent = TypeVar("TEvent", bound=_RunScoped)


@dataclass(frozen=True, slots=True)
class LogEvent:
    """One appended log line, published after it is stored."""

    run_id: str
    entry: LogEntry


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """A run reached a terminal status; always published after its last log event."""

    run_id: str
    status: RunStatus
    exit_code: int | None = None
    error_message: str | None = None


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting publishers."""

    stage: str
    run_id: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription(Generic[TEvent]):
    token: int
    run_id: str | None
    callback: Callable[[TEvent], object]


class EventBus(Generic[TEvent]):
    """Resilient synchronous bus for one event payload type with bounded replay.

    Subscribers run on the publishing thread, in subscription order. A subscriber
    that raises is recorded as a ``DispatchError``; the remaining subscribers still
    receive the event.
    """

    def __init__(self, *, name: str, buffer_size: int = _DEFAULT_BUFFER_SIZE) -> None:
        if not isinstance(buffer_size, int) or isinstance(buffer_size, bool):
            raise ValueError(f"buffer_size must be an integer, got {type(buffer_size).__name__}")
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")

        self._name = name
        self._buffer: deque[TEvent] = deque(maxlen=buffer_size)
        self._subscriptions: dict[int, _Subscription[TEvent]] = {}
        self._dispatch_errors: deque[DispatchError] = deque(maxlen=_DEFAULT_ERROR_BUFFER)
        self._next_token = 1
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return self._name

    def subscribe(self, callback: Callable[[TEvent], object], *, run_id: str | None = None) -> int:
        """Subscribe to every event, or only to events of ``run_id``."""

        if not callable(callback):
            raise ValueError("callback must be callable")

        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(
                token=token, run_id=run_id, callback=callback
            )
        return token

    def unsubscribe(self, token: int) -> bool:
        """Unsubscribe callback token. Returns ``True`` when token existed."""

        if not isinstance(token, int):
            raise ValueError(f"token must be an integer, got {type(token).__name__}")
        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    def publish(self, event: TEvent) -> tuple[DispatchError, ...]:
        with self._lock:
            self._buffer.append(event)
            subscriptions = tuple(self._subscriptions.values())

        errors: list[DispatchError] = []
        for subscription in subscriptions:
            if subscription.run_id is not None and subscription.run_id != event.run_id:
                continue
            try:
                subscription.callback(event)
            except Exception as exc:  # noqa: BLE001
                errors.append(
                    DispatchError(
                        stage=f"{self._name}.subscriber",
                        run_id=event.run_id,
                        target=_callback_name(subscription.callback),
                        error_type=exc.__class__.__name__,
                        message=str(exc),
                    )
                )

        if errors:
            with self._lock:
                self._dispatch_errors.extend(errors)
        return tuple(errors)

    def replay(self, *, run_id: str | None = None, limit: int | None = None) -> tuple[TEvent, ...]:
        """Replay buffered events in publish order."""

        with self._lock:
            events = tuple(self._buffer)

        filtered = [event for event in events if run_id is None or event.run_id == run_id]
        if limit is not None:
            if not isinstance(limit, int):
                raise ValueError(f"limit must be an integer, got {type(limit).__name__}")
            if limit <= 0:
                return ()
            filtered = filtered[-limit:]
        return tuple(filtered)

    def dispatch_errors(self, *, limit: int | None = None) -> tuple[DispatchError, ...]:
        """Return recorded subscriber failures."""

        with self._lock:
            errors = tuple(self._dispatch_errors)

        if limit is None:
            return errors
        if limit <= 0:
            return ()
        return errors[-limit:]


@dataclass(frozen=True, slots=True)
class RunSubscription:
    """Tokens for a paired log/status subscription; ``close`` releases both."""

    feed: RunEventFeed
    log_token: int | None
    status_token: int | None

    def close(self) -> None:
        if self.log_token is not None:
            self.feed.logs.unsubscribe(self.log_token)
        if self.status_token is not None:
            self.feed.statuses.unsubscribe(self.status_token)


@dataclass(slots=True)
class RunEventFeed:
    """The subscribable event feed: one typed bus per payload kind."""

    logs: EventBus[LogEvent] = field(default_factory=lambda: EventBus[LogEvent](name="logs"))
    statuses: EventBus[StatusEvent] = field(
        default_factory=lambda: EventBus[StatusEvent](name="statuses")
    )

    def subscribe(
        self,
        *,
        on_log: Callable[[LogEvent], object] | None = None,
        on_status: Callable[[StatusEvent], object] | None = None,
        run_id: str | None = None,
    ) -> RunSubscription:
        log_token = None if on_log is None else self.logs.subscribe(on_log, run_id=run_id)
        status_token = (
            None if on_status is None else self.statuses.subscribe(on_status, run_id=run_id)
        )
        return RunSubscription(feed=self, log_token=log_token, status_token=status_token)


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


__all__ = [
    "DispatchError",
    "EventBus",
    "LogEvent",
    "RunEventFeed",
    "RunSubscription",
    "StatusEvent",
]
