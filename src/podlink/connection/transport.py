"""
Transport abstraction and the websocket implementation.

A transport is one full-duplex text channel to one session. The manager
talks to it through four callbacks and a synchronous ``send``::

    transport = WebSocketTransport(build_session_url(server_url, "work"))
    transport.open(on_open, on_message, on_close, on_error)
    transport.send('{"type": "input", "data": "ls\\r"}')
    transport.close(1000, "bye")
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional
from urllib.parse import quote, urlsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from podlink.connection.models import ABNORMAL_CLOSE_CODE, CLEAN_CLOSE_CODE
from podlink.errors import TransportError
from podlink.logger import get_logger

logger = get_logger(__name__)

DEFAULT_OPEN_TIMEOUT = 10.0  # seconds

OpenHandler = Callable[[], None]
MessageHandler = Callable[[str], None]
CloseHandler = Callable[[int, str], None]
ErrorHandler = Callable[[Exception], None]

_CLOSE = object()


def build_session_url(server_url: str, session_name: str) -> str:
    """
    Build the websocket URL for a session.

    The scheme follows the server location's security level (``https`` and
    ``wss`` give ``wss``) and the session name is percent-encoded the way
    ``encodeURIComponent`` does it.

    >>> build_session_url("https://pod.local:3000", "my work")
    'wss://pod.local:3000/terminal/my%20work'
    """
    parts = urlsplit(server_url if "://" in server_url else f"http://{server_url}")
    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    encoded = quote(session_name, safe="!~*'()")
    return f"{scheme}://{parts.netloc}/terminal/{encoded}"


class Transport(ABC):
    """One message channel to a session."""

    @abstractmethod
    def open(
        self,
        on_open: OpenHandler,
        on_message: MessageHandler,
        on_close: CloseHandler,
        on_error: ErrorHandler,
    ) -> None:
        """
        Start connecting. Callbacks fire from the event loop.

        Raises:
            TransportError: If the transport cannot be started at all.
        """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while frames can be sent."""

    @abstractmethod
    def send(self, text: str) -> None:
        """
        Queue a text frame. Best effort, not awaited for delivery.

        Raises:
            TransportError: If the transport is not open.
        """

    @abstractmethod
    def close(self, code: int = CLEAN_CLOSE_CODE, reason: str = "") -> None:
        """Close the channel with a protocol close code."""


TransportFactory = Callable[[str], Transport]


class WebSocketTransport(Transport):
    """
    Transport backed by the ``websockets`` asyncio client.

    Outbound frames go through an outbox drained by a writer task, which
    keeps ``send`` synchronous. Connection failures are reported as
    ``on_error`` followed by ``on_close`` with code 1006.
    """

    def __init__(self, url: str, open_timeout: float = DEFAULT_OPEN_TIMEOUT):
        self.url = url
        self.open_timeout = open_timeout
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._closing = False
        self._close_request: tuple[int, str] = (CLEAN_CLOSE_CODE, "")
        self._on_open: Optional[OpenHandler] = None
        self._on_message: Optional[MessageHandler] = None
        self._on_close: Optional[CloseHandler] = None
        self._on_error: Optional[ErrorHandler] = None

    def open(self, on_open, on_message, on_close, on_error) -> None:
        if self._task is not None:
            raise TransportError(f"Transport to {self.url} already opened")

        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise TransportError(f"Cannot open {self.url}: {e}") from e
        self._task = loop.create_task(self._run())

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closing

    def send(self, text: str) -> None:
        if not self.is_open:
            raise TransportError(f"Transport to {self.url} is not open")
        self._outbox.put_nowait(text)

    def close(self, code: int = CLEAN_CLOSE_CODE, reason: str = "") -> None:
        if self._closing:
            return
        self._closing = True
        self._close_request = (code, reason)

        if self._ws is None:
            # Still connecting
            if self._task is not None:
                self._task.cancel()
            return

        self._outbox.put_nowait(_CLOSE)

    # -- Internal ------------------------------------------------------------

    def _emit(self, handler: Optional[Callable], *args) -> None:
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as e:
            logger.error(f"Transport callback failed for {self.url}: {e}")

    async def _write_loop(self, ws) -> None:
        while True:
            item = await self._outbox.get()
            try:
                if item is _CLOSE:
                    await ws.close(*self._close_request)
                    return
                await ws.send(item)
            except ConnectionClosed:
                return

    async def _run(self) -> None:
        code, reason = ABNORMAL_CLOSE_CODE, ""
        writer: Optional[asyncio.Task] = None

        try:
            logger.debug(f"Opening websocket {self.url}")
            async with websockets.connect(
                self.url, open_timeout=self.open_timeout
            ) as ws:
                self._ws = ws
                writer = asyncio.create_task(self._write_loop(ws))
                self._emit(self._on_open)

                try:
                    async for message in ws:
                        if isinstance(message, bytes):
                            message = message.decode("utf-8", errors="replace")
                        self._emit(self._on_message, message)
                except ConnectionClosed:
                    pass

                code = ws.close_code or ABNORMAL_CLOSE_CODE
                reason = ws.close_reason or ""

        except asyncio.CancelledError:
            code, reason = self._close_request
        except (OSError, WebSocketException) as e:
            logger.warning(f"Websocket {self.url} failed: {e}")
            self._emit(self._on_error, TransportError(str(e)))
            code, reason = ABNORMAL_CLOSE_CODE, str(e)
        finally:
            self._ws = None
            if writer is not None:
                writer.cancel()

        logger.debug(f"Websocket {self.url} closed: code={code} reason={reason!r}")
        self._emit(self._on_close, code, reason)
