"""Session Manager - sole writer of sessions, messages and specification snapshots.

The Session Manager:
1. Creates sessions and seeds an empty version 0 specification
2. Reconstructs a session's full state from its message log and latest snapshot
3. Persists state incrementally (new messages only, new versions only)
4. Issues and redeems shareable magic-link tokens
5. Preserves error state and replays messages queued while offline

The store handle is injected at construction; there is no process-wide instance.
Access to one session is assumed to be serialized (one chat turn at a time).
"""

import logging
import secrets
import traceback
from datetime import timedelta
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DbSession, sessionmaker

from client.offline_queue import InMemoryOfflineQueue, OfflineQueue
from config import Settings, settings as default_settings
from contracts import (
    CompletenessState,
    ContactInfo,
    FormalPRD,
    LockedSection,
    Message,
    PlainEnglishSummary,
    Session,
    SessionState,
    SessionStatus,
    Specification,
    utcnow,
)
from orchestrator.errors import (
    InvalidMagicLinkError,
    SessionAbandonedError,
    SessionNotFoundError,
    StaleSpecificationError,
)
from storage.models import ErrorRecord, MessageRecord, SessionRecord, SpecificationRecord

logger = logging.getLogger(__name__)


class SessionManager:
    """Composes the message log and specification history into one session view."""

    def __init__(
        self,
        session_factory: sessionmaker,
        offline_queue: Optional[OfflineQueue] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the Session Manager.

        Args:
            session_factory: SQLAlchemy sessionmaker bound to the persistent store
            offline_queue: Local queue for messages composed while disconnected
            settings: Policy settings (abandoned-session writes, magic-link TTL)
        """
        self.session_factory = session_factory
        self.offline_queue = offline_queue or InMemoryOfflineQueue()
        self.settings = settings or default_settings

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(self) -> Session:
        """Create a new active session with an empty version 0 specification."""
        session_id = str(uuid4())
        now = utcnow()
        state = SessionState.initial(session_id, now)

        with self.session_factory.begin() as db:
            record = SessionRecord(
                id=session_id,
                created_at=now,
                last_accessed_at=now,
                status=SessionStatus.ACTIVE.value,
                locked_sections=[],
                completeness=state.completeness.to_wire(),
            )
            db.add(record)
            db.flush()
            db.add(self._snapshot_record(session_id, state.specification, now))

        logger.info("Created session %s", session_id)
        return Session(
            id=session_id,
            created_at=now,
            last_accessed_at=now,
            status=SessionStatus.ACTIVE,
            state=state,
        )

    def get_session(self, session_id: str) -> Optional[Session]:
        """Reconstruct a session's full state, or None if it doesn't exist.

        Every successful read refreshes ``last_accessed_at``.
        """
        with self.session_factory.begin() as db:
            record = db.get(SessionRecord, session_id)
            if record is None:
                return None

            message_records = db.scalars(
                select(MessageRecord)
                .where(MessageRecord.session_id == session_id)
                .order_by(MessageRecord.timestamp.asc(), MessageRecord.seq.asc())
            ).all()
            spec_record = db.scalars(
                select(SpecificationRecord)
                .where(SpecificationRecord.session_id == session_id)
                .order_by(SpecificationRecord.version.desc())
                .limit(1)
            ).first()

            if spec_record is not None:
                specification = self._to_specification(spec_record)
            else:
                # Not persisted until the engine produces a real document
                specification = Specification.empty(session_id, last_updated=record.created_at)

            record.last_accessed_at = utcnow()
            state = SessionState(
                conversation_history=[self._to_message(m) for m in message_records],
                specification=specification,
                completeness=(
                    CompletenessState.model_validate(record.completeness)
                    if record.completeness
                    else CompletenessState()
                ),
                locked_sections=[LockedSection.model_validate(s) for s in record.locked_sections or []],
                user_info=ContactInfo.model_validate(record.user_info) if record.user_info else None,
            )
            return self._to_session(record, state)

    def save_session_state(
        self,
        session_id: str,
        state: SessionState,
        expected_version: Optional[int] = None,
    ) -> None:
        """Persist the parts of ``state`` the store doesn't have yet.

        Messages are matched by id, so re-saving the same state writes nothing.
        A specification snapshot is written only when its version is newer than
        the latest stored one.

        Args:
            session_id: Session to save into
            state: Full session state as the caller sees it
            expected_version: If given, the latest stored version must equal it
                (optimistic check for callers that may race)

        Raises:
            SessionNotFoundError: Unknown session id
            SessionAbandonedError: Session is abandoned and the policy rejects writes
            StaleSpecificationError: ``expected_version`` doesn't match the store
        """
        now = utcnow()
        with self.session_factory.begin() as db:
            record = self._require_record(db, session_id)
            self._ensure_writable(record)

            stored_ids = set(db.scalars(
                select(MessageRecord.id).where(MessageRecord.session_id == session_id)
            ))
            written = 0
            for message in state.conversation_history:
                if message.id in stored_ids:
                    continue
                stored_ids.add(message.id)
                db.add(MessageRecord(
                    id=message.id,
                    session_id=session_id,
                    role=message.role.value,
                    content=message.content,
                    timestamp=message.timestamp,
                    metadata_=message.metadata,
                ))
                written += 1

            latest = db.scalar(
                select(func.max(SpecificationRecord.version))
                .where(SpecificationRecord.session_id == session_id)
            )
            if expected_version is not None and latest != expected_version:
                raise StaleSpecificationError(session_id, expected_version, latest)

            version = state.specification.version
            if latest is None or version > latest:
                db.add(self._snapshot_record(session_id, state.specification, now))
                logger.debug("Stored specification v%d for %s", version, session_id)
            elif version < latest:
                logger.warning(
                    "Skipping stale specification v%d for %s (stored v%d)",
                    version, session_id, latest,
                )

            record.completeness = state.completeness.to_wire()
            record.locked_sections = [s.to_wire() for s in state.locked_sections]
            if state.user_info is not None:
                record.user_info = state.user_info.to_wire()
            record.last_accessed_at = now

        logger.debug("Saved session %s (%d new messages)", session_id, written)

    def abandon_session(self, session_id: str) -> None:
        """Mark a session abandoned. Its data stays fully retrievable."""
        with self.session_factory.begin() as db:
            record = self._require_record(db, session_id)
            record.status = SessionStatus.ABANDONED.value
        logger.info("Abandoned session %s", session_id)

    def lock_section(self, session_id: str, name: str, summary: str) -> LockedSection:
        """Record a section as decided, replacing any earlier lock with the same name."""
        locked = LockedSection(name=name, summary=summary)
        with self.session_factory.begin() as db:
            record = self._require_record(db, session_id)
            self._ensure_writable(record)
            sections = [s for s in record.locked_sections or [] if s.get("name") != name]
            sections.append(locked.to_wire())
            record.locked_sections = sections
        return locked

    def count_specification_snapshots(self, session_id: str, version: Optional[int] = None) -> int:
        """Number of stored snapshots for a session (optionally for one version)."""
        query = select(func.count()).select_from(SpecificationRecord).where(
            SpecificationRecord.session_id == session_id
        )
        if version is not None:
            query = query.where(SpecificationRecord.version == version)
        with self.session_factory() as db:
            return db.scalar(query) or 0

    # ------------------------------------------------------------------
    # Magic links
    # ------------------------------------------------------------------

    def generate_magic_link(self, session_id: str) -> str:
        """Mint a new token for the session, superseding any previous one."""
        token = secrets.token_urlsafe(32)
        ttl = self.settings.magic_link_ttl_hours
        with self.session_factory.begin() as db:
            record = self._require_record(db, session_id)
            record.magic_link_token = token
            record.magic_link_expires_at = utcnow() + timedelta(hours=ttl) if ttl else None
        logger.info("Issued magic link for session %s", session_id)
        return token

    def build_magic_link_url(self, token: str) -> str:
        return f"{self.settings.public_base_url.rstrip('/')}/restore/{token}"

    def revoke_magic_link(self, session_id: str) -> None:
        """Invalidate the session's current token without issuing a new one."""
        with self.session_factory.begin() as db:
            record = self._require_record(db, session_id)
            record.magic_link_token = None
            record.magic_link_expires_at = None

    def restore_session_from_magic_link(self, token: str) -> Session:
        """Resolve a token to its session. Tokens are reusable until superseded.

        Raises:
            InvalidMagicLinkError: No session holds this token, or it has expired
        """
        if not token:
            raise InvalidMagicLinkError()
        with self.session_factory() as db:
            record = db.scalars(
                select(SessionRecord).where(SessionRecord.magic_link_token == token).limit(1)
            ).first()
            if record is None:
                raise InvalidMagicLinkError()
            if record.magic_link_expires_at is not None and record.magic_link_expires_at <= utcnow():
                raise InvalidMagicLinkError()
            session_id = record.id

        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------

    def preserve_error_state(
        self,
        session_id: str,
        error: BaseException,
        user_input: Optional[str] = None,
        current_state: Optional[SessionState] = None,
    ) -> None:
        """Best-effort record of a failed turn. Never raises.

        Stores the error with the input that triggered it and, if given, saves
        ``current_state`` so the user's last message is not lost.
        """
        try:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            with self.session_factory.begin() as db:
                db.add(ErrorRecord(
                    session_id=session_id,
                    error_message=str(error) or type(error).__name__,
                    error_stack=stack,
                    user_input=user_input,
                    timestamp=utcnow(),
                ))
            if current_state is not None:
                self.save_session_state(session_id, current_state)
        except Exception:
            # Must not mask the error the caller is already reporting
            logger.exception("Failed to preserve error state for session %s", session_id)

    def reconstruct_context_after_error(self, session_id: str) -> Optional[SessionState]:
        """Last known good state, or None. Never raises."""
        try:
            session = self.get_session(session_id)
        except Exception:
            logger.exception("Failed to reconstruct context for session %s", session_id)
            return None
        return session.state if session else None

    # ------------------------------------------------------------------
    # Offline queue
    # ------------------------------------------------------------------

    def queue_offline_message(self, session_id: str, message: Message) -> None:
        self.offline_queue.append(session_id, message)

    def get_offline_messages(self, session_id: str) -> List[Message]:
        return self.offline_queue.get(session_id)

    def clear_offline_messages(self, session_id: str) -> None:
        self.offline_queue.clear(session_id)

    def sync_offline_messages(self, session_id: str) -> int:
        """Append queued messages to the stored conversation and persist them.

        The queue is cleared only after the save succeeds; on failure it is kept
        for the next attempt and the error propagates.

        Returns:
            Number of messages synced
        """
        queued = self.offline_queue.get(session_id)
        if not queued:
            return 0

        try:
            session = self.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            state = session.state.model_copy(update={
                "conversation_history": [*session.state.conversation_history, *queued],
            })
            self.save_session_state(session_id, state)
        except Exception:
            logger.exception("Failed to sync %d offline messages for session %s", len(queued), session_id)
            raise

        self.offline_queue.clear(session_id)
        logger.info("Synced %d offline messages for session %s", len(queued), session_id)
        return len(queued)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_record(self, db: DbSession, session_id: str) -> SessionRecord:
        record = db.get(SessionRecord, session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return record

    def _ensure_writable(self, record: SessionRecord) -> None:
        if (
            record.status == SessionStatus.ABANDONED.value
            and self.settings.abandoned_session_writes == "reject"
        ):
            raise SessionAbandonedError(record.id)

    @staticmethod
    def _snapshot_record(session_id: str, spec: Specification, now) -> SpecificationRecord:
        return SpecificationRecord(
            session_id=session_id,
            version=spec.version,
            plain_english_summary=spec.plain_english_summary.to_wire(),
            formal_prd=spec.formal_prd.to_wire(),
            created_at=now,
            updated_at=spec.last_updated,
        )

    @staticmethod
    def _to_specification(record: SpecificationRecord) -> Specification:
        return Specification(
            id=record.session_id,
            version=record.version,
            plain_english_summary=PlainEnglishSummary.model_validate(record.plain_english_summary),
            formal_prd=FormalPRD.model_validate(record.formal_prd),
            last_updated=record.updated_at,
        )

    @staticmethod
    def _to_message(record: MessageRecord) -> Message:
        return Message(
            id=record.id,
            role=record.role,
            content=record.content,
            timestamp=record.timestamp,
            metadata=record.metadata_,
        )

    @staticmethod
    def _to_session(record: SessionRecord, state: SessionState) -> Session:
        return Session(
            id=record.id,
            created_at=record.created_at,
            last_accessed_at=record.last_accessed_at,
            magic_link_token=record.magic_link_token,
            magic_link_expires_at=record.magic_link_expires_at,
            status=SessionStatus(record.status),
            state=state,
        )
