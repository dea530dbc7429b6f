"""
Connection state and wire protocol models.

Covers:
- ConnectionState
- Client → Server envelopes (input, resize, sync_request, ping)
- Server → Client envelopes (output, pong, exit, extensions)
"""

import json
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

CLEAN_CLOSE_CODE = 1000
ABNORMAL_CLOSE_CODE = 1006


class ConnectionState(str, Enum):
    """Lifecycle state of a ConnectionManager."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


# ─── Client → Server ─────────────────────────────────────────────────


class ClientMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


class InputMessage(ClientMessage):
    """Keystrokes or pasted text for the terminal."""

    type: str = "input"
    data: str


class ResizeMessage(ClientMessage):
    type: str = "resize"
    cols: int
    rows: int


class SyncRequestMessage(ClientMessage):
    """Ask the server for ``count`` lines of history starting at ``fromLine``."""

    type: str = "sync_request"
    from_line: int = Field(alias="fromLine")
    count: int


class PingMessage(ClientMessage):
    """Heartbeat carrying the client clock in milliseconds."""

    type: str = "ping"
    timestamp: int


# ─── Server → Client ─────────────────────────────────────────────────


class ServerMessage(BaseModel):
    """Any server envelope; unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    type: str


class OutputMessage(ServerMessage):
    type: str = "output"
    data: str


class PongMessage(ServerMessage):
    type: str = "pong"
    timestamp: Optional[int] = None


class ExitMessage(ServerMessage):
    """The terminal process exited."""

    type: str = "exit"
    code: int


_SERVER_MODELS: dict[str, type[ServerMessage]] = {
    "output": OutputMessage,
    "pong": PongMessage,
    "exit": ExitMessage,
}


def parse_server_message(raw: Union[str, bytes]) -> Optional[ServerMessage]:
    """
    Parse an inbound frame into a server envelope.

    Returns None when the frame is not a JSON object with a string ``type``;
    callers treat such frames as raw terminal output. Envelopes of a known
    type that fail validation are kept as generic ServerMessage instances.
    """
    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return None

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        return None

    model = _SERVER_MODELS.get(data["type"], ServerMessage)
    try:
        return model.model_validate(data)
    except ValidationError:
        return ServerMessage.model_validate(data)
