"""
Scoped, cancelable timers owned by a component.

A component creates its timers once and cancels them all on teardown;
starting a timer that is already armed replaces the pending callback.
"""

from typing import Callable, Optional

from podlink.platform import Cancellable, Clock


class Timer:
    """A single-shot timer."""

    def __init__(self, clock: Clock, name: str = "timer"):
        self._clock = clock
        self.name = name
        self._handle: Optional[Cancellable] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self.cancel()

        def fire():
            self._handle = None
            callback()

        self._handle = self._clock.call_later(delay_ms, fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class IntervalTimer(Timer):
    """Fires every ``interval_ms`` until cancelled."""

    def start(self, interval_ms: int, callback: Callable[[], None]) -> None:
        self.cancel()

        def fire():
            self._handle = self._clock.call_later(interval_ms, fire)
            callback()

        self._handle = self._clock.call_later(interval_ms, fire)
