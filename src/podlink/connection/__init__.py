"""
Resilient connection to a remote terminal session.

The ConnectionManager keeps one transport open to one named session,
reconnecting with exponential backoff, tracking latency with a ping/pong
heartbeat and dropping idle connections while the client is in the
background.
"""

from podlink.connection.manager import ConnectionManager
from podlink.connection.models import (
    CLEAN_CLOSE_CODE,
    ClientMessage,
    ConnectionState,
    ExitMessage,
    InputMessage,
    OutputMessage,
    PingMessage,
    PongMessage,
    ResizeMessage,
    ServerMessage,
    SyncRequestMessage,
    parse_server_message,
)
from podlink.connection.transport import (
    Transport,
    WebSocketTransport,
    build_session_url,
)

__all__ = [
    "CLEAN_CLOSE_CODE",
    "ClientMessage",
    "ConnectionManager",
    "ConnectionState",
    "ExitMessage",
    "InputMessage",
    "OutputMessage",
    "PingMessage",
    "PongMessage",
    "ResizeMessage",
    "ServerMessage",
    "SyncRequestMessage",
    "Transport",
    "WebSocketTransport",
    "build_session_url",
    "parse_server_message",
]
