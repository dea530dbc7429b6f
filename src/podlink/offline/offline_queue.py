"""
Durable queue for input captured while disconnected.

Actions are persisted per session and replayed in order through a caller
supplied send function once the connection is back::

    queue = OfflineQueue()
    await queue.enqueue("work", "input", "ls\\r")
    ...
    await queue.replay("work", lambda kind, payload: send(kind, payload))
"""

import asyncio
import inspect
import threading
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from podlink.config import CONFIG
from podlink.errors import PersistenceError
from podlink.events import (
    ErrorOccurred,
    EventEmitter,
    QueueChanged,
    ReplayCompleted,
    ReplayProgress,
)
from podlink.logger import get_logger
from podlink.offline.models import QueuedInput, QueuedKind, QueuedPayload
from podlink.offline.store import QueueStore, SQLiteQueueStore
from podlink.platform import Clock, SystemClock

logger = get_logger(__name__)

REPLAY_DELAY = 0.05  # seconds between replayed items

SendFn = Callable[[str, QueuedPayload], Union[bool, Awaitable[bool]]]


class OfflineQueue(EventEmitter):
    """
    Per-session, ordered, persisted queue of pending input/resize actions.

    Store access runs in a worker thread. Failures are reported through
    ``ErrorOccurred`` events; reads fall back to empty results.

    Args:
        store: Backing store. Opened lazily at ``db_path`` when omitted.
        db_path: SQLite file for the default store.
        clock: Source of record timestamps.
        replay_delay: Pause between replayed items, in seconds.
    """

    def __init__(
        self,
        store: Optional[QueueStore] = None,
        *,
        db_path: Optional[Union[str, Path]] = None,
        clock: Optional[Clock] = None,
        replay_delay: float = REPLAY_DELAY,
    ):
        super().__init__()
        self._store = store
        self._db_path = Path(db_path) if db_path else CONFIG.queue_db_path
        self._store_lock = threading.Lock()
        self._clock = clock or SystemClock()
        self.replay_delay = replay_delay
        self._replaying = False

    # -- Store access --------------------------------------------------------

    def _ensure_store(self) -> QueueStore:
        with self._store_lock:
            if self._store is None:
                self._store = SQLiteQueueStore(self._db_path)
            return self._store

    async def _call(self, method: str, *args: Any) -> Any:
        def run():
            return getattr(self._ensure_store(), method)(*args)

        return await asyncio.to_thread(run)

    def _report(self, message: str, error: Exception) -> None:
        logger.error(f"{message}: {error}")
        self.emit(ErrorOccurred(error))

    def _generate_id(self, timestamp: int) -> str:
        return f"{timestamp}-{uuid.uuid4().hex[:9]}"

    # -- Public API ----------------------------------------------------------

    async def enqueue(
        self, session_name: str, kind: QueuedKind, payload: Any
    ) -> Optional[QueuedInput]:
        """
        Persist an action for later replay.

        Returns:
            The stored record, or None if it could not be stored.
        """
        timestamp = self._clock.now()
        try:
            item = QueuedInput(
                id=self._generate_id(timestamp),
                timestamp=timestamp,
                session_name=session_name,
                kind=kind,
                payload=payload,
            )
        except ValueError as e:
            self._report(f"Rejected {kind} for '{session_name}'", e)
            return None

        try:
            stored = await self._call("put", item)
        except PersistenceError as e:
            self._report("Failed to enqueue", e)
            return None

        logger.debug(f"Queued {kind} for '{session_name}' ({stored.id})")
        count = await self.get_queue_count(session_name)
        self.emit(QueueChanged(session_name, count))
        return stored

    async def get_queue(self, session_name: str) -> list[QueuedInput]:
        """All queued records for a session, oldest first."""
        try:
            return await self._call("query_by_index", "session_name", session_name)
        except PersistenceError as e:
            self._report("Failed to get queue", e)
            return []

    async def get_queue_count(self, session_name: str) -> int:
        try:
            return await self._call("count", "session_name", session_name)
        except PersistenceError as e:
            self._report("Failed to count queue", e)
            return 0

    async def get_total_count(self) -> int:
        try:
            return await self._call("count")
        except PersistenceError as e:
            self._report("Failed to count queues", e)
            return 0

    async def clear_queue(self, session_name: str) -> None:
        try:
            items = await self._call("query_by_index", "session_name", session_name)
            for item in items:
                await self._call("delete", item.id)
        except PersistenceError as e:
            self._report(f"Failed to clear queue for '{session_name}'", e)
            return

        logger.info(f"Cleared {len(items)} queued actions for '{session_name}'")
        self.emit(QueueChanged(session_name, 0))

    async def clear_all(self) -> None:
        try:
            await self._call("clear")
        except PersistenceError as e:
            self._report("Failed to clear all queues", e)
            return
        logger.info("Cleared all queued actions")

    async def replay(self, session_name: str, send_fn: SendFn) -> int:
        """
        Send a session's queued actions in order through ``send_fn``.

        Each record is deleted only after ``send_fn(kind, payload)`` reports
        success; the first failure stops the replay and leaves that record
        and everything after it queued. Only one replay runs at a time.

        Returns:
            Number of records sent and removed.
        """
        if self._replaying:
            logger.warning("Replay already in progress")
            return 0

        self._replaying = True
        replayed = 0
        try:
            items = await self.get_queue(session_name)
            total = len(items)
            if total:
                logger.info(f"Replaying {total} queued actions for '{session_name}'")

            for index, item in enumerate(items, start=1):
                self.emit(ReplayProgress(index, total))

                if not await self._send(send_fn, item):
                    logger.warning(
                        f"Replay send failed at {index}/{total}, stopping"
                    )
                    break

                try:
                    await self._call("delete", item.id)
                except PersistenceError as e:
                    self._report(f"Failed to remove replayed {item.id}", e)
                    break

                replayed += 1
                await asyncio.sleep(self.replay_delay)

            self.emit(ReplayCompleted(replayed))
            self.emit(QueueChanged(session_name, total - replayed))
            return replayed
        except Exception as e:
            self._report("Replay failed", e)
            return replayed
        finally:
            self._replaying = False

    def is_replaying(self) -> bool:
        return self._replaying

    def close(self) -> None:
        """Release the store and drop all listeners."""
        with self._store_lock:
            if self._store is not None:
                self._store.close()
                self._store = None
        self.remove_all_listeners()

    # -- Internal ------------------------------------------------------------

    async def _send(self, send_fn: SendFn, item: QueuedInput) -> bool:
        try:
            result = send_fn(item.kind, item.payload)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._report(f"Replay sink raised for {item.id}", e)
            return False
        return bool(result)
