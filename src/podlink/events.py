"""
Typed observer used by the connection manager and the offline queue.

Every notification is a small frozen dataclass. Listeners subscribe to an
event class and receive instances of exactly that class::

    unsubscribe = manager.on(OutputReceived, lambda e: print(e.data))
    ...
    unsubscribe()
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from podlink.logger import get_logger

logger = get_logger(__name__)


# ─── Connection events ───────────────────────────────────────────────


@dataclass(frozen=True)
class StateChanged:
    state: Any  # ConnectionState


@dataclass(frozen=True)
class Connected:
    session_name: str
    was_reconnect: bool = False


@dataclass(frozen=True)
class Disconnected:
    reason: str
    code: int


@dataclass(frozen=True)
class Reconnecting:
    attempt: int
    max_attempts: int
    delay: int


@dataclass(frozen=True)
class MessageReceived:
    """A parsed server envelope other than ``pong``."""

    message: Any  # ServerMessage


@dataclass(frozen=True)
class OutputReceived:
    """Terminal output, from an ``output`` envelope or a raw text frame."""

    data: str


@dataclass(frozen=True)
class LatencyUpdated:
    latency: int


# ─── Offline queue events ────────────────────────────────────────────


@dataclass(frozen=True)
class QueueChanged:
    session_name: str
    count: int


@dataclass(frozen=True)
class ReplayProgress:
    current: int
    total: int


@dataclass(frozen=True)
class ReplayCompleted:
    count: int


# ─── Shared ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ErrorOccurred:
    error: Exception


E = TypeVar("E")
Listener = Callable[[Any], None]


class EventEmitter:
    """
    Registry of listeners keyed by event class.

    Registering the same callback twice is a no-op and removing an unknown
    callback is harmless. ``emit`` dispatches over a snapshot, so listeners
    may subscribe or unsubscribe while an event is being delivered. A
    listener that raises is logged and does not stop the others.
    """

    def __init__(self):
        self._listeners: dict[type, list[Listener]] = {}

    def on(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        """Subscribe ``callback`` and return a function that unsubscribes it."""
        callbacks = self._listeners.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)
        return lambda: self.off(event_type, callback)

    def off(self, event_type: type[E], callback: Callable[[E], None]) -> None:
        callbacks = self._listeners.get(event_type)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def once(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        """Subscribe for a single delivery."""

        def wrapper(event):
            self.off(event_type, wrapper)
            callback(event)

        return self.on(event_type, wrapper)

    def emit(self, event: Any) -> None:
        for callback in list(self._listeners.get(type(event), ())):
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Error in {type(event).__name__} listener {callback!r}: {e}"
                )

    def listener_count(self, event_type: type) -> int:
        return len(self._listeners.get(event_type, ()))

    def remove_all_listeners(self, event_type: Optional[type] = None) -> None:
        if event_type is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event_type, None)
