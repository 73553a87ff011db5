"""Client-side mirror of the current session.

The cache is a convenience copy for the client. The server is authoritative:
the cache is only reconciled at explicit sync points (load, magic-link resume,
offline flush) and the server state simply replaces what was cached.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

from pydantic import Field, ValidationError

from config import settings
from contracts import (
    CamelModel,
    CompletenessState,
    Message,
    Session,
    SessionState,
    Specification,
    utcnow,
)

if TYPE_CHECKING:
    from orchestrator.session_manager import SessionManager

logger = logging.getLogger(__name__)


class SessionCache(CamelModel):
    """Local copy of one session, persisted as a single JSON file."""

    session_id: Optional[str] = None
    conversation_history: List[Message] = Field(default_factory=list)
    specification: Optional[Specification] = None
    completeness: Optional[CompletenessState] = None
    last_synced_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    def add_message(self, message: Message) -> None:
        self.conversation_history = [*self.conversation_history, message]

    def update_specification(self, specification: Specification) -> None:
        self.specification = specification

    def update_completeness(self, completeness: CompletenessState) -> None:
        self.completeness = completeness

    def restore_session(self, state: SessionState, session_id: str) -> None:
        """Replace everything cached with server state."""
        self.session_id = session_id
        self.conversation_history = list(state.conversation_history)
        self.specification = state.specification
        self.completeness = state.completeness
        self.last_synced_at = utcnow()

    def clear_session(self) -> None:
        self.session_id = None
        self.conversation_history = []
        self.specification = None
        self.completeness = None
        self.last_synced_at = None

    def message_count(self) -> int:
        return len(self.conversation_history)

    def latest_message(self) -> Optional[Message]:
        return self.conversation_history[-1] if self.conversation_history else None

    # ------------------------------------------------------------------
    # Sync points
    # ------------------------------------------------------------------

    def load_from_server(self, manager: "SessionManager", session_id: str) -> bool:
        """Replace the cache with the server's view. Returns False if the session is gone."""
        session = manager.get_session(session_id)
        if session is None:
            logger.warning("Session %s not found on server; cache left as is", session_id)
            return False
        self.restore_session(session.state, session.id)
        return True

    def resume_from_magic_link(self, manager: "SessionManager", token: str) -> Session:
        """Resolve a magic link and adopt the session it points to.

        Raises:
            InvalidMagicLinkError: Token is unknown or expired
        """
        session = manager.restore_session_from_magic_link(token)
        self.restore_session(session.state, session.id)
        return session

    def flush_offline(self, manager: "SessionManager") -> int:
        """Push queued offline messages for the cached session, then reload.

        Returns:
            Number of messages synced
        """
        if not self.session_id:
            return 0
        synced = manager.sync_offline_messages(self.session_id)
        self.load_from_server(manager, self.session_id)
        return synced

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the cache to disk (settings.session_cache_path by default)."""
        path = Path(path) if path else settings.get_session_cache_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_wire(), indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "SessionCache":
        """Read a saved cache. A missing or unreadable file gives an empty cache."""
        path = Path(path) if path else settings.get_session_cache_path()
        if not path.exists():
            return cls()
        try:
            return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, ValidationError) as e:
            logger.error("Failed to read session cache %s: %s", path, e)
            return cls()
