"""
Offline input queue.

User input typed while disconnected is persisted per session and replayed
in order once the connection comes back.
"""

from podlink.offline.models import QueuedInput, ResizePayload
from podlink.offline.offline_queue import OfflineQueue
from podlink.offline.store import QueueStore, SQLiteQueueStore

__all__ = [
    "OfflineQueue",
    "QueueStore",
    "QueuedInput",
    "ResizePayload",
    "SQLiteQueueStore",
]
