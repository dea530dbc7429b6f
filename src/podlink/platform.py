"""
Platform capabilities injected into the connection manager.

The manager never reads global state: wall-clock time, whether the client
is in the foreground and whether the network is reachable all come through
the small interfaces below. Real adapters live here; tests use a manual
clock and the settable states directly.
"""

import asyncio
import time
from typing import Callable, Optional, Protocol
from urllib.parse import urlsplit

from podlink.logger import get_logger

logger = get_logger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> int:
        """Current time in milliseconds."""
        ...

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Cancellable:
        """Run ``callback`` once after ``delay_ms``."""
        ...


class VisibilityProvider(Protocol):
    def is_visible(self) -> bool: ...

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]: ...


class NetworkStatusProvider(Protocol):
    def is_online(self) -> bool: ...

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]: ...


class SystemClock:
    """Wall-clock time and timers on the running asyncio loop."""

    def now(self) -> int:
        return int(time.time() * 1000)

    def call_later(
        self, delay_ms: int, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)


class _Flag:
    """A boolean with change listeners."""

    def __init__(self, value: bool):
        self._value = value
        self._callbacks: list[Callable[[bool], None]] = []

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _set(self, value: bool) -> None:
        if value == self._value:
            return
        self._value = value
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception as e:
                logger.error(f"{type(self).__name__} listener failed: {e}")


class ForegroundState(_Flag):
    """
    Foreground/background state reported by the host application.

    A terminal front end marks itself hidden when suspended or minimised and
    visible again when it regains focus.
    """

    def __init__(self, visible: bool = True):
        super().__init__(visible)

    def is_visible(self) -> bool:
        return self._value

    def set_visible(self, visible: bool) -> None:
        self._set(visible)


class NetworkState(_Flag):
    """Online/offline state, set directly or by a ConnectivityProbe."""

    def __init__(self, online: bool = True):
        super().__init__(online)

    def is_online(self) -> bool:
        return self._value

    def set_online(self, online: bool) -> None:
        if online != self._value:
            logger.info(f"Network {'online' if online else 'offline'}")
        self._set(online)


class ConnectivityProbe:
    """
    Periodically opens a TCP connection to the server to detect outages.

    Args:
        server_url: The server location (http/https/ws/wss URL).
        state: NetworkState to update.
        interval: Seconds between probes.
        timeout: Seconds to wait for each probe.
    """

    def __init__(
        self,
        server_url: str,
        state: NetworkState,
        interval: float = 5.0,
        timeout: float = 3.0,
    ):
        parts = urlsplit(server_url)
        secure = parts.scheme in ("https", "wss")
        self.host = parts.hostname or "localhost"
        self.port = parts.port or (443 if secure else 80)
        self.state = state
        self.interval = interval
        self.timeout = timeout
        self._task: Optional[asyncio.Task] = None

    async def check(self) -> bool:
        """Probe once and update the network state."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Connectivity probe to {self.host}:{self.port} failed: {e}")
            self.state.set_online(False)
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        self.state.set_online(True)
        return True

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run_loop(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval)
