"""Tests for the Session Manager against in-memory SQLite."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from client import InMemoryOfflineQueue
from config import Settings
from contracts import (
    REQUIRED_SECTIONS,
    CompletenessState,
    ContactInfo,
    LockedSection,
    Message,
    PlainEnglishSummary,
    Role,
    SessionStatus,
    utcnow,
)
from orchestrator import (
    InvalidMagicLinkError,
    SessionAbandonedError,
    SessionManager,
    SessionNotFoundError,
    StaleSpecificationError,
)
from storage import ErrorRecord


def with_messages(state, *messages):
    return state.model_copy(update={
        "conversation_history": [*state.conversation_history, *messages],
    })


def with_spec(state, version, **summary):
    spec = state.specification.model_copy(update={
        "version": version,
        "plain_english_summary": PlainEnglishSummary(**summary),
    })
    return state.model_copy(update={"specification": spec})


class TestCreateAndGet:
    """Test session creation and reconstruction."""

    def test_new_session_is_empty(self, manager):
        created = manager.create_session()
        session = manager.get_session(created.id)

        assert session.id == created.id
        assert session.status == SessionStatus.ACTIVE
        assert session.state.conversation_history == []
        assert session.state.specification.version == 0
        assert session.state.specification.id == created.id
        assert session.state.completeness.missing_sections == REQUIRED_SECTIONS
        assert session.state.completeness.ready_for_handoff is False
        assert manager.count_specification_snapshots(created.id) == 1

    def test_session_ids_unique(self, manager):
        assert manager.create_session().id != manager.create_session().id

    def test_unknown_session_is_none(self, manager):
        assert manager.get_session("does-not-exist") is None

    def test_read_refreshes_last_accessed(self, manager):
        created = manager.create_session()
        first = manager.get_session(created.id)
        second = manager.get_session(created.id)
        assert second.last_accessed_at >= first.last_accessed_at >= created.created_at

    def test_messages_ordered_by_timestamp(self, manager):
        session = manager.create_session()
        now = utcnow()
        later = Message(role=Role.ASSISTANT, content="second", timestamp=now + timedelta(seconds=5))
        earlier = Message(role=Role.USER, content="first", timestamp=now)
        manager.save_session_state(session.id, with_messages(session.state, later, earlier))

        history = manager.get_session(session.id).state.conversation_history
        assert [m.content for m in history] == ["first", "second"]

    def test_timestamp_ties_keep_insertion_order(self, manager):
        session = manager.create_session()
        now = utcnow()
        messages = [Message(role=Role.USER, content=str(i), timestamp=now) for i in range(4)]
        manager.save_session_state(session.id, with_messages(session.state, *messages))

        history = manager.get_session(session.id).state.conversation_history
        assert [m.content for m in history] == ["0", "1", "2", "3"]

    def test_metadata_round_trips(self, manager):
        session = manager.create_session()
        reply = Message.assistant("Hi", specUpdated=True)
        manager.save_session_state(session.id, with_messages(session.state, reply))

        stored = manager.get_session(session.id).state.conversation_history[0]
        assert stored.id == reply.id
        assert stored.metadata == {"specUpdated": True}


class TestSaveSessionState:
    """Test incremental persistence."""

    def test_save_is_idempotent(self, manager):
        session = manager.create_session()
        state = with_spec(with_messages(session.state, Message.user("a"), Message.assistant("b")), 1, overview="x")

        manager.save_session_state(session.id, state)
        manager.save_session_state(session.id, state)

        restored = manager.get_session(session.id).state
        assert len(restored.conversation_history) == 2
        assert manager.count_specification_snapshots(session.id, version=1) == 1

    def test_duplicate_ids_in_one_save_written_once(self, manager):
        session = manager.create_session()
        msg = Message.user("once")
        manager.save_session_state(session.id, with_messages(session.state, msg, msg))
        assert len(manager.get_session(session.id).state.conversation_history) == 1

    def test_new_version_appended(self, manager):
        session = manager.create_session()
        v1 = with_spec(session.state, 1, overview="first")
        v2 = with_spec(v1, 2, overview="second")
        manager.save_session_state(session.id, v1)
        manager.save_session_state(session.id, v2)

        restored = manager.get_session(session.id).state.specification
        assert restored.version == 2
        assert restored.plain_english_summary.overview == "second"
        assert manager.count_specification_snapshots(session.id) == 3

    def test_same_version_not_rewritten(self, manager):
        session = manager.create_session()
        manager.save_session_state(session.id, with_spec(session.state, 1, overview="original"))
        manager.save_session_state(session.id, with_spec(session.state, 1, overview="rewritten"))

        restored = manager.get_session(session.id).state.specification
        assert restored.plain_english_summary.overview == "original"
        assert manager.count_specification_snapshots(session.id, version=1) == 1

    def test_older_version_skipped(self, manager):
        session = manager.create_session()
        manager.save_session_state(session.id, with_spec(session.state, 3, overview="newest"))
        manager.save_session_state(session.id, with_spec(session.state, 2, overview="stale"))

        restored = manager.get_session(session.id).state.specification
        assert restored.version == 3
        assert manager.count_specification_snapshots(session.id, version=2) == 0

    def test_expected_version_mismatch(self, manager):
        session = manager.create_session()
        manager.save_session_state(session.id, with_spec(session.state, 1, overview="x"))

        with pytest.raises(StaleSpecificationError) as exc_info:
            manager.save_session_state(
                session.id, with_spec(session.state, 1, overview="y"), expected_version=0,
            )
        assert exc_info.value.actual == 1

    def test_expected_version_match(self, manager):
        session = manager.create_session()
        manager.save_session_state(
            session.id, with_spec(session.state, 1, overview="x"), expected_version=0,
        )
        assert manager.get_session(session.id).state.specification.version == 1

    def test_failed_save_writes_nothing(self, manager):
        session = manager.create_session()
        manager.save_session_state(session.id, with_spec(session.state, 1, overview="x"))
        state = with_spec(with_messages(session.state, Message.user("lost?")), 2, overview="y")

        with pytest.raises(StaleSpecificationError):
            manager.save_session_state(session.id, state, expected_version=0)

        restored = manager.get_session(session.id).state
        assert restored.conversation_history == []
        assert restored.specification.version == 1

    def test_unknown_session_raises(self, manager):
        session = manager.create_session()
        with pytest.raises(SessionNotFoundError):
            manager.save_session_state("missing", session.state)

    def test_completeness_locked_sections_and_user_info_persist(self, manager):
        session = manager.create_session()
        state = session.state.model_copy(update={
            "completeness": CompletenessState.from_missing(["flows"]),
            "locked_sections": [LockedSection(name="Target Users", summary="Parents")],
            "user_info": ContactInfo(name="Sam", email="sam@example.com"),
        })
        manager.save_session_state(session.id, state)

        restored = manager.get_session(session.id).state
        assert restored.completeness.missing_sections == ["flows"]
        assert restored.locked_sections[0].summary == "Parents"
        assert restored.user_info.email == "sam@example.com"


class TestMagicLinks:
    """Test shareable magic-link tokens."""

    def test_restore_from_link(self, manager):
        session = manager.create_session()
        manager.save_session_state(session.id, with_messages(session.state, Message.user("hello")))
        token = manager.generate_magic_link(session.id)

        restored = manager.restore_session_from_magic_link(token)
        assert restored.id == session.id
        assert restored.magic_link_token == token
        assert restored.state.conversation_history[0].content == "hello"

    def test_restore_matches_get_session(self, manager):
        session = manager.create_session()
        manager.save_session_state(session.id, with_messages(session.state, Message.user("hello")))
        token = manager.generate_magic_link(session.id)

        via_link = manager.restore_session_from_magic_link(token)
        direct = manager.get_session(session.id)
        assert via_link.model_dump(exclude={"last_accessed_at"}) == direct.model_dump(exclude={"last_accessed_at"})

    def test_link_is_reusable(self, manager):
        session = manager.create_session()
        token = manager.generate_magic_link(session.id)
        assert manager.restore_session_from_magic_link(token).id == session.id
        assert manager.restore_session_from_magic_link(token).id == session.id

    def test_new_link_supersedes_old(self, manager):
        session = manager.create_session()
        old = manager.generate_magic_link(session.id)
        new = manager.generate_magic_link(session.id)

        assert old != new
        with pytest.raises(InvalidMagicLinkError):
            manager.restore_session_from_magic_link(old)
        assert manager.restore_session_from_magic_link(new).id == session.id

    @pytest.mark.parametrize("token", ["", "not-a-real-token"])
    def test_invalid_token(self, manager, token):
        manager.create_session()
        with pytest.raises(InvalidMagicLinkError):
            manager.restore_session_from_magic_link(token)

    def test_tokens_are_long_and_unguessable(self, manager):
        session = manager.create_session()
        tokens = {manager.generate_magic_link(session.id) for _ in range(20)}
        assert len(tokens) == 20
        assert all(len(t) >= 32 for t in tokens)

    def test_revoked_link_rejected(self, manager):
        session = manager.create_session()
        token = manager.generate_magic_link(session.id)
        manager.revoke_magic_link(session.id)
        with pytest.raises(InvalidMagicLinkError):
            manager.restore_session_from_magic_link(token)

    def test_link_for_unknown_session(self, manager):
        with pytest.raises(SessionNotFoundError):
            manager.generate_magic_link("missing")

    def test_expired_link_rejected(self, session_factory):
        manager = SessionManager(
            session_factory,
            settings=Settings(_env_file=None, magic_link_ttl_hours=1),
        )
        session = manager.create_session()
        token = manager.generate_magic_link(session.id)
        assert manager.restore_session_from_magic_link(token).magic_link_expires_at is not None

        later = utcnow() + timedelta(hours=2)
        with patch("orchestrator.session_manager.utcnow", return_value=later):
            with pytest.raises(InvalidMagicLinkError):
                manager.restore_session_from_magic_link(token)

    def test_link_url(self, manager):
        url = manager.build_magic_link_url("abc")
        assert url.endswith("/restore/abc")


class TestLifecycle:
    """Test abandonment and locked sections."""

    def test_abandoned_session_still_readable(self, manager):
        session = manager.create_session()
        manager.save_session_state(session.id, with_messages(session.state, Message.user("keep me")))
        manager.abandon_session(session.id)

        restored = manager.get_session(session.id)
        assert restored.status == SessionStatus.ABANDONED
        assert restored.state.conversation_history[0].content == "keep me"

    def test_abandoned_writes_allowed_by_default(self, manager):
        session = manager.create_session()
        manager.abandon_session(session.id)
        manager.save_session_state(session.id, with_messages(session.state, Message.user("late")))
        assert len(manager.get_session(session.id).state.conversation_history) == 1

    def test_abandoned_writes_rejected_by_policy(self, session_factory):
        manager = SessionManager(
            session_factory,
            settings=Settings(_env_file=None, abandoned_session_writes="reject"),
        )
        session = manager.create_session()
        manager.abandon_session(session.id)
        with pytest.raises(SessionAbandonedError):
            manager.save_session_state(session.id, with_messages(session.state, Message.user("late")))

    def test_abandon_unknown_session(self, manager):
        with pytest.raises(SessionNotFoundError):
            manager.abandon_session("missing")

    def test_lock_section_replaces_same_name(self, manager):
        session = manager.create_session()
        manager.lock_section(session.id, "Target Users", "Dads")
        manager.lock_section(session.id, "Target Users", "All parents")
        manager.lock_section(session.id, "Scope", "Booking only")

        locked = manager.get_session(session.id).state.locked_sections
        assert [(s.name, s.summary) for s in locked] == [
            ("Target Users", "All parents"),
            ("Scope", "Booking only"),
        ]


class TestErrorPreservation:
    """Test error capture and recovery."""

    def test_error_recorded_with_user_message(self, manager, session_factory):
        session = manager.create_session()
        pending = with_messages(session.state, Message.user("don't lose this"))
        try:
            raise RuntimeError("synthesis exploded")
        except RuntimeError as e:
            manager.preserve_error_state(session.id, e, user_input="don't lose this", current_state=pending)

        with session_factory() as db:
            record = db.query(ErrorRecord).one()
        assert record.error_message == "synthesis exploded"
        assert "RuntimeError" in record.error_stack
        assert record.user_input == "don't lose this"

        history = manager.reconstruct_context_after_error(session.id).conversation_history
        assert [m.content for m in history] == ["don't lose this"]

    def test_preserve_never_raises(self, manager):
        state = manager.create_session().state
        # Saving into an unknown session fails inside preserve_error_state
        manager.preserve_error_state("missing", ValueError("boom"), user_input="x", current_state=state)

    def test_reconstruct_unknown_session(self, manager):
        assert manager.reconstruct_context_after_error("missing") is None


class TestOfflineSync:
    """Test the offline message queue."""

    def test_sync_appends_in_queue_order(self, manager):
        session = manager.create_session()
        stored = [Message.user("1"), Message.assistant("2"), Message.user("3")]
        manager.save_session_state(session.id, with_messages(session.state, *stored))

        manager.queue_offline_message(session.id, Message.user("offline 1"))
        manager.queue_offline_message(session.id, Message.user("offline 2"))
        assert len(manager.get_offline_messages(session.id)) == 2

        assert manager.sync_offline_messages(session.id) == 2

        history = manager.get_session(session.id).state.conversation_history
        assert len(history) == 5
        assert [m.content for m in history[-2:]] == ["offline 1", "offline 2"]
        assert manager.get_offline_messages(session.id) == []

    def test_sync_empty_queue(self, manager):
        session = manager.create_session()
        assert manager.sync_offline_messages(session.id) == 0

    def test_failed_sync_keeps_queue(self, manager):
        session = manager.create_session()
        manager.queue_offline_message(session.id, Message.user("offline"))

        with patch.object(manager, "save_session_state", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                manager.sync_offline_messages(session.id)

        assert [m.content for m in manager.get_offline_messages(session.id)] == ["offline"]

    def test_sync_unknown_session_keeps_queue(self, manager):
        manager.queue_offline_message("missing", Message.user("offline"))
        with pytest.raises(SessionNotFoundError):
            manager.sync_offline_messages("missing")
        assert len(manager.get_offline_messages("missing")) == 1

    def test_clear_offline_messages(self, manager):
        manager.queue_offline_message("s", Message.user("x"))
        manager.clear_offline_messages("s")
        assert manager.get_offline_messages("s") == []

    def test_queues_are_per_session(self, session_factory):
        manager = SessionManager(session_factory, offline_queue=InMemoryOfflineQueue())
        manager.queue_offline_message("a", Message.user("for a"))
        assert manager.get_offline_messages("b") == []
