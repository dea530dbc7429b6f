"""
Configuration for podlink.

Values come from the environment (optionally seeded from a ``.env`` file by
the CLI) with the defaults below. Durations are milliseconds.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

PROJECT_DIR = Path(__file__).resolve().parent.parent.parent
DATA_DIR = Path(os.getenv("PODLINK_DATA_DIR", str(Path.home() / ".podlink")))

DEFAULT_SERVER_URL = "http://localhost:3000"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class ConnectionOptions:
    """Reconnect, heartbeat and idle policy for a ConnectionManager."""

    reconnect: bool = True
    max_reconnect_attempts: int = 10
    reconnect_delay: int = 1000  # base backoff
    max_reconnect_delay: int = 30000  # backoff cap
    ping_interval: int = 30000
    idle_timeout: int = 300000  # 0 = disabled

    def __post_init__(self):
        for name in (
            "max_reconnect_attempts",
            "reconnect_delay",
            "max_reconnect_delay",
            "idle_timeout",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.ping_interval <= 0:
            raise ValueError("ping_interval must be at least 1 ms")

    def backoff_delay(self, attempt: int) -> int:
        """
        Delay before reconnect attempt ``attempt`` (1-based).

        ``min(reconnect_delay * 2 ** (attempt - 1), max_reconnect_delay)``
        """
        if attempt < 1:
            raise ValueError("attempt must be at least 1")
        return min(
            self.reconnect_delay * 2 ** (attempt - 1), self.max_reconnect_delay
        )

    @classmethod
    def from_env(cls) -> "ConnectionOptions":
        defaults = cls()
        return cls(
            reconnect=_env_bool("PODLINK_RECONNECT", defaults.reconnect),
            max_reconnect_attempts=_env_int(
                "PODLINK_MAX_RECONNECT_ATTEMPTS", defaults.max_reconnect_attempts
            ),
            reconnect_delay=_env_int(
                "PODLINK_RECONNECT_DELAY", defaults.reconnect_delay
            ),
            max_reconnect_delay=_env_int(
                "PODLINK_MAX_RECONNECT_DELAY", defaults.max_reconnect_delay
            ),
            ping_interval=_env_int("PODLINK_PING_INTERVAL", defaults.ping_interval),
            idle_timeout=_env_int("PODLINK_IDLE_TIMEOUT", defaults.idle_timeout),
        )


@dataclass
class Config:
    server_url: str = DEFAULT_SERVER_URL
    data_dir: Path = DATA_DIR
    log_level: str = "INFO"
    log_file: Optional[str] = None
    connection: ConnectionOptions = field(default_factory=ConnectionOptions)

    @property
    def queue_db_path(self) -> Path:
        return self.data_dir / "offline-queue.db"

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            server_url=os.getenv("PODLINK_SERVER_URL", DEFAULT_SERVER_URL),
            data_dir=Path(os.getenv("PODLINK_DATA_DIR", str(DATA_DIR))),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
            connection=ConnectionOptions.from_env(),
        )

    def reload(self) -> None:
        """Re-read the environment into this instance."""
        fresh = Config.from_env()
        self.server_url = fresh.server_url
        self.data_dir = fresh.data_dir
        self.log_level = fresh.log_level
        self.log_file = fresh.log_file
        self.connection = fresh.connection


CONFIG = Config.from_env()
