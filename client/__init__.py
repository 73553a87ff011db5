"""Client-side state: offline message queue and local session cache."""

from .offline_queue import FileOfflineQueue, InMemoryOfflineQueue, OfflineQueue
from .session_cache import SessionCache

__all__ = [
    "OfflineQueue",
    "InMemoryOfflineQueue",
    "FileOfflineQueue",
    "SessionCache",
]
