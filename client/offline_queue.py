"""Local-only queues for messages composed while disconnected.

A queue is an append list per session id. It is never merged or reordered;
the SessionManager appends its contents to the authoritative history on sync.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from config import settings
from contracts import Message, utcnow

logger = logging.getLogger(__name__)


class OfflineQueue(ABC):
    """Append-only per-session message queue."""

    @abstractmethod
    def append(self, session_id: str, message: Message) -> None:
        pass

    @abstractmethod
    def get(self, session_id: str) -> List[Message]:
        pass

    @abstractmethod
    def clear(self, session_id: str) -> None:
        pass


class InMemoryOfflineQueue(OfflineQueue):
    """Process-local queue, mostly for tests and single-process clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, List[Message]] = {}

    def append(self, session_id: str, message: Message) -> None:
        with self._lock:
            self._items.setdefault(session_id, []).append(message)

    def get(self, session_id: str) -> List[Message]:
        with self._lock:
            return list(self._items.get(session_id, []))

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._items.pop(session_id, None)


class FileOfflineQueue(OfflineQueue):
    """One JSON file per session: ``offline_messages_<session_id>.json``.

    A file that cannot be read is moved aside to
    ``offline_messages_<session_id>.<timestamp>.corrupt`` rather than
    overwritten, so its messages can still be recovered by hand.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self.directory = Path(directory) if directory else settings.get_offline_queue_path()

    def _path(self, session_id: str) -> Path:
        return self.directory / f"offline_messages_{session_id}.json"

    def _read(self, session_id: str) -> List[Message]:
        path = self._path(session_id)
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return [Message.model_validate(item) for item in raw]
        except (ValueError, TypeError) as e:
            aside = path.with_name(f"{path.stem}.{utcnow():%Y%m%d%H%M%S%f}.corrupt")
            path.replace(aside)
            logger.error("Unreadable offline messages for %s moved to %s: %s", session_id, aside.name, e)
            return []

    def append(self, session_id: str, message: Message) -> None:
        messages = self._read(session_id)
        messages.append(message)
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(session_id)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps([m.to_wire() for m in messages], indent=2), encoding="utf-8")
        tmp.replace(path)

    def get(self, session_id: str) -> List[Message]:
        return self._read(session_id)

    def clear(self, session_id: str) -> None:
        self._path(session_id).unlink(missing_ok=True)
