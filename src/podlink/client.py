"""
Terminal client: routes user input to the live connection or the offline
queue, and drains the queue after every (re)connect.
"""

import asyncio
from typing import Optional

from podlink.connection.manager import ConnectionManager
from podlink.events import Connected
from podlink.logger import get_logger
from podlink.offline.models import QueuedPayload, ResizePayload
from podlink.offline.offline_queue import OfflineQueue

logger = get_logger(__name__)


class TerminalClient:
    """
    Glue between a ConnectionManager and an OfflineQueue.

    Args:
        connection: The session connection.
        queue: Persisted queue for input typed while offline.
    """

    def __init__(self, connection: ConnectionManager, queue: OfflineQueue):
        self.connection = connection
        self.queue = queue
        self.session_name: Optional[str] = None
        self._dimensions: Optional[tuple[int, int]] = None
        self._replay_task: Optional[asyncio.Task] = None
        self._unsubscribe = connection.on(Connected, self._handle_connected)

    def set_dimensions(self, cols: int, rows: int) -> None:
        """Record the terminal size to announce on every connect."""
        self._dimensions = (cols, rows)

    def attach(self, session_name: str) -> None:
        """Remember the session and connect to it."""
        self.session_name = session_name
        self.connection.connect(session_name)

    async def send_input(self, data: str) -> bool:
        """
        Send input now, or queue it while disconnected.

        Returns:
            True if it went out over the live connection.
        """
        if self.connection.is_connected() and self.connection.send_input(data):
            return True
        if self.session_name:
            await self.queue.enqueue(self.session_name, "input", data)
            logger.info("Input queued (offline)")
        return False

    async def send_resize(self, cols: int, rows: int) -> bool:
        self._dimensions = (cols, rows)
        if self.connection.is_connected() and self.connection.send_resize(cols, rows):
            return True
        if self.session_name:
            await self.queue.enqueue(
                self.session_name, "resize", {"cols": cols, "rows": rows}
            )
        return False

    def replay_sink(self, kind: str, payload: QueuedPayload) -> bool:
        """Send one queued action through the connection."""
        if kind == "input" and isinstance(payload, str):
            return self.connection.send_input(payload)
        if kind == "resize" and isinstance(payload, ResizePayload):
            return self.connection.send_resize(payload.cols, payload.rows)
        logger.warning(f"Cannot replay queued action '{kind}'")
        return False

    async def flush_queue(self) -> int:
        """Replay this session's queue if it has anything in it."""
        if not self.session_name:
            return 0
        count = await self.queue.get_queue_count(self.session_name)
        if count == 0:
            return 0
        logger.info(f"Replaying {count} queued input(s)...")
        return await self.queue.replay(self.session_name, self.replay_sink)

    def _handle_connected(self, event: Connected) -> None:
        if self._dimensions:
            self.connection.send_resize(*self._dimensions)

        if self.session_name != event.session_name:
            return
        if self._replay_task and not self._replay_task.done():
            return
        self._replay_task = asyncio.get_running_loop().create_task(
            self.flush_queue()
        )

    async def close(self) -> None:
        self._unsubscribe()
        if self._replay_task and not self._replay_task.done():
            await self._replay_task
        self.connection.destroy()
        self.queue.close()
