"""
Connection manager for a single named terminal session.

Owns the lifecycle of one logical connection:
- exponential-backoff reconnection after abnormal closes
- foreground- and network-aware reconnect scheduling
- ping/pong heartbeat with latency tracking
- idle disconnect while the client is in the background

State machine::

    disconnected ──connect──▶ connecting ──open──▶ connected
         ▲                        ▲                   │ close
         │ clean close /          │ timer / foreground│
         │ attempts exhausted     │ / online          ▼
         └────────────────────────┴──────────── reconnecting
"""

from typing import Optional

from pydantic import ValidationError

from podlink.config import CONFIG, ConnectionOptions
from podlink.connection.models import (
    ABNORMAL_CLOSE_CODE,
    CLEAN_CLOSE_CODE,
    ClientMessage,
    ConnectionState,
    InputMessage,
    OutputMessage,
    PingMessage,
    PongMessage,
    ResizeMessage,
    SyncRequestMessage,
    parse_server_message,
)
from podlink.connection.timers import IntervalTimer, Timer
from podlink.connection.transport import (
    Transport,
    TransportFactory,
    WebSocketTransport,
    build_session_url,
)
from podlink.errors import TransportError
from podlink.events import (
    Connected,
    Disconnected,
    ErrorOccurred,
    EventEmitter,
    LatencyUpdated,
    MessageReceived,
    OutputReceived,
    Reconnecting,
    StateChanged,
)
from podlink.logger import get_logger
from podlink.platform import (
    Clock,
    ForegroundState,
    NetworkState,
    NetworkStatusProvider,
    SystemClock,
    VisibilityProvider,
)

logger = get_logger(__name__)

SWITCHING_SESSIONS = "Switching sessions"
IDLE_TIMEOUT = "Idle timeout"
USER_DISCONNECTED = "User disconnected"


class ConnectionManager(EventEmitter):
    """
    Resilient connection to one session at a time.

    Public operations never raise; failures are reported through
    ``ErrorOccurred`` events and boolean results.

    Args:
        server_url: Location of the server (``https://`` selects ``wss://``).
        options: Reconnect/heartbeat/idle policy. Defaults to ``CONFIG.connection``.
        clock: Time source and timer scheduler.
        visibility: Foreground/background signal.
        network: Online/offline signal.
        transport_factory: Builds a transport for a URL.
    """

    def __init__(
        self,
        server_url: Optional[str] = None,
        options: Optional[ConnectionOptions] = None,
        *,
        clock: Optional[Clock] = None,
        visibility: Optional[VisibilityProvider] = None,
        network: Optional[NetworkStatusProvider] = None,
        transport_factory: Optional[TransportFactory] = None,
    ):
        super().__init__()
        self.server_url = server_url or CONFIG.server_url
        self.options = options or CONFIG.connection
        self._clock = clock or SystemClock()
        self._visibility = visibility or ForegroundState()
        self._network = network or NetworkState()
        self._transport_factory = transport_factory or WebSocketTransport

        self._state = ConnectionState.DISCONNECTED
        self._session_name: Optional[str] = None
        self._url: Optional[str] = None
        self._transport: Optional[Transport] = None
        self._has_connected = False

        self._reconnect_attempts = 0
        self._reconnect_timer = Timer(self._clock, "reconnect")

        self._ping_timer = IntervalTimer(self._clock, "ping")
        self._last_ping_time = 0
        self._latency: Optional[int] = None

        self._idle_timer = Timer(self._clock, "idle")

        self.last_close_reason: Optional[str] = None
        self.last_close_code: Optional[int] = None

        self._unsubscribers = [
            self._visibility.subscribe(self._handle_visibility_change),
            self._network.subscribe(self._handle_network_change),
        ]

    # -- Public API ----------------------------------------------------------

    def connect(self, session_name: str) -> None:
        """Connect to a session, switching away from any other one."""
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            if self._session_name == session_name:
                return
            self.disconnect(SWITCHING_SESSIONS)

        self._session_name = session_name
        self._url = build_session_url(self.server_url, session_name)
        self._reconnect_attempts = 0
        self._do_connect()

    def disconnect(self, reason: str = USER_DISCONNECTED) -> None:
        """Close the connection on purpose; no reconnection follows."""
        self._stop_timers()
        self._drop_transport(CLEAN_CLOSE_CODE, reason)
        self._settle(reason, CLEAN_CLOSE_CODE)

    def send_input(self, data: str) -> bool:
        return self._send(InputMessage, data=data)

    def send_resize(self, cols: int, rows: int) -> bool:
        return self._send(ResizeMessage, cols=cols, rows=rows)

    def request_history(self, from_line: int, count: int) -> bool:
        return self._send(SyncRequestMessage, from_line=from_line, count=count)

    def get_state(self) -> ConnectionState:
        return self._state

    def get_latency(self) -> Optional[int]:
        return self._latency

    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def session_name(self) -> Optional[str]:
        return self._session_name

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def destroy(self) -> None:
        """Tear down: disconnect, cancel every timer, drop all listeners."""
        self.disconnect("Destroyed")
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.remove_all_listeners()

    def __enter__(self) -> "ConnectionManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()

    # -- Transport lifecycle -------------------------------------------------

    def _do_connect(self) -> None:
        self._reconnect_timer.cancel()
        self._drop_transport(CLEAN_CLOSE_CODE, SWITCHING_SESSIONS)
        self._set_state(ConnectionState.CONNECTING)

        logger.info(f"Connecting to {self._url}")
        try:
            transport = self._transport_factory(self._url)
            self._transport = transport
            transport.open(
                on_open=lambda: self._handle_open(transport),
                on_message=lambda raw: self._handle_message(transport, raw),
                on_close=lambda code, reason: self._handle_close(
                    transport, code, reason
                ),
                on_error=lambda error: self._handle_error(transport, error),
            )
        except Exception as e:
            error = e if isinstance(e, TransportError) else TransportError(str(e))
            logger.error(f"Failed to create transport for {self._url}: {e}")
            self._transport = None
            self.emit(ErrorOccurred(error))
            # A transport that never opened closes abnormally
            self._on_closed(ABNORMAL_CLOSE_CODE, f"Transport failed: {e}")

    def _drop_transport(self, code: int, reason: str) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            transport.close(code, reason)
        except Exception as e:
            logger.warning(f"Error closing transport: {e}")

    def _handle_open(self, transport: Transport) -> None:
        if transport is not self._transport:
            return

        was_reconnect = self._has_connected
        self._has_connected = True
        self._reconnect_attempts = 0
        self._set_state(ConnectionState.CONNECTED)
        self._ping_timer.start(self.options.ping_interval, self._send_ping)
        self._reset_idle_timer()

        logger.info(f"Connected to session '{self._session_name}'")
        self.emit(Connected(self._session_name, was_reconnect))

    def _handle_close(self, transport: Transport, code: int, reason: str) -> None:
        if transport is not self._transport:
            return
        self._transport = None
        self._on_closed(code, reason)

    def _on_closed(self, code: int, reason: str) -> None:
        self._ping_timer.cancel()
        self._idle_timer.cancel()
        reason = reason or "Connection closed"

        if code == CLEAN_CLOSE_CODE:
            logger.info(f"Connection closed cleanly: {reason}")
            self._settle(reason, code)
            return

        if (
            self.options.reconnect
            and self._reconnect_attempts < self.options.max_reconnect_attempts
        ):
            self.last_close_reason = reason
            self.last_close_code = code
            self._schedule_reconnect()
        else:
            logger.warning(
                f"Connection lost (code={code}, reason={reason}); "
                f"giving up after {self._reconnect_attempts} attempts"
            )
            self._settle(reason, code)

    def _handle_error(self, transport: Transport, error: Exception) -> None:
        if transport is not self._transport:
            return
        logger.error(f"Transport error: {error}")
        self.emit(ErrorOccurred(error))

    def _handle_message(self, transport: Transport, raw: str) -> None:
        if transport is not self._transport:
            return

        self._reset_idle_timer()
        message = parse_server_message(raw)
        if message is None:
            self.emit(OutputReceived(raw))
            return

        if isinstance(message, PongMessage):
            self._latency = self._clock.now() - self._last_ping_time
            logger.debug(f"Latency {self._latency}ms")
            self.emit(LatencyUpdated(self._latency))
            return

        if isinstance(message, OutputMessage):
            self.emit(OutputReceived(message.data))
        self.emit(MessageReceived(message))

    def _send(self, message_cls: type[ClientMessage], **fields) -> bool:
        try:
            message = message_cls(**fields)
        except ValidationError as e:
            logger.warning(f"Refusing to send invalid {message_cls.__name__}: {e}")
            self.emit(ErrorOccurred(TransportError(str(e))))
            return False

        transport = self._transport
        if transport is None or not transport.is_open:
            return False

        try:
            transport.send(message.to_wire())
        except Exception as e:
            logger.warning(f"Send of '{message.type}' failed: {e}")
            error = e if isinstance(e, TransportError) else TransportError(str(e))
            self.emit(ErrorOccurred(error))
            return False

        self._reset_idle_timer()
        return True

    def _set_state(self, state: ConnectionState) -> None:
        if self._state != state:
            logger.debug(f"State {self._state.value} -> {state.value}")
            self._state = state
            self.emit(StateChanged(state))

    def _settle(self, reason: str, code: int) -> None:
        self.last_close_reason = reason
        self.last_close_code = code
        self._set_state(ConnectionState.DISCONNECTED)
        self.emit(Disconnected(reason, code))

    def _stop_timers(self) -> None:
        self._reconnect_timer.cancel()
        self._ping_timer.cancel()
        self._idle_timer.cancel()

    # -- Reconnection --------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_attempts += 1
        delay = self.options.backoff_delay(self._reconnect_attempts)

        logger.info(
            f"Reconnecting in {delay}ms "
            f"(attempt {self._reconnect_attempts}/{self.options.max_reconnect_attempts})"
        )
        self.emit(
            Reconnecting(
                self._reconnect_attempts, self.options.max_reconnect_attempts, delay
            )
        )
        try:
            self._reconnect_timer.start(delay, self._fire_reconnect)
        except RuntimeError as e:
            # No event loop to run the timer on
            logger.error(f"Cannot schedule reconnect: {e}")
            self.emit(ErrorOccurred(TransportError(f"Cannot schedule reconnect: {e}")))
            self._settle(
                self.last_close_reason or "Connection closed",
                self.last_close_code or ABNORMAL_CLOSE_CODE,
            )

    def _fire_reconnect(self) -> None:
        if self._state != ConnectionState.RECONNECTING:
            return
        if not self._visibility.is_visible() or not self._network.is_online():
            logger.debug("Reconnect deferred until foreground and online")
            return
        self._do_connect()

    def _handle_visibility_change(self, visible: bool) -> None:
        if not visible:
            if self._state == ConnectionState.CONNECTED:
                self._reset_idle_timer()
            return

        if self._state == ConnectionState.RECONNECTING:
            if not self._network.is_online():
                return
            logger.info("Foreground regained, reconnecting now")
            self._do_connect()
        elif (
            self._state == ConnectionState.DISCONNECTED
            and self._session_name
            and self.last_close_reason == IDLE_TIMEOUT
        ):
            logger.info("Foreground regained after idle disconnect, reconnecting")
            self.connect(self._session_name)

    def _handle_network_change(self, online: bool) -> None:
        if not online or not self._session_name:
            return
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.RECONNECTING):
            logger.info("Network restored, reconnecting")
            self._reconnect_attempts = 0
            self.connect(self._session_name)

    # -- Heartbeat / idle ----------------------------------------------------

    def _send_ping(self) -> None:
        self._last_ping_time = self._clock.now()
        self._send(PingMessage, timestamp=self._last_ping_time)

    def _reset_idle_timer(self) -> None:
        self._idle_timer.cancel()
        if self.options.idle_timeout > 0:
            self._idle_timer.start(self.options.idle_timeout, self._on_idle)

    def _on_idle(self) -> None:
        if self._visibility.is_visible():
            return
        logger.info("Idle timeout in background, disconnecting")
        self.disconnect(IDLE_TIMEOUT)
