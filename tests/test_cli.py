"""Tests for the offline paths of the click CLI."""

import pytest
from click.testing import CliRunner
from sqlalchemy.exc import OperationalError

import main
from client import FileOfflineQueue
from config import settings
from contracts import Message
from orchestrator import SessionManager, SpecWizard


def unreachable(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_manager(monkeypatch, tmp_path, session_factory):
    monkeypatch.setattr(settings, "offline_queue_dir", str(tmp_path / "queue"))
    monkeypatch.setattr(settings, "session_cache_path", str(tmp_path / "cache.json"))
    manager = SessionManager(session_factory, offline_queue=FileOfflineQueue(tmp_path / "queue"))
    monkeypatch.setattr(main, "build_session_manager", lambda offline_queue=None: manager)
    return manager


class TestChatOffline:
    """Test chat when the store is down or messages are waiting."""

    def test_unreachable_store_queues_message(self, runner, cli_manager, monkeypatch):
        monkeypatch.setattr(main, "build_session_manager", unreachable)

        result = runner.invoke(main.cli, ["chat", "s-1", "typed while offline"])

        assert result.exit_code == 0
        assert "queued offline" in result.output
        queued = FileOfflineQueue(settings.offline_queue_dir).get("s-1")
        assert [m.content for m in queued] == ["typed while offline"]

    def test_queued_messages_synced_before_turn(self, runner, cli_manager, monkeypatch):
        session = cli_manager.create_session()
        cli_manager.queue_offline_message(session.id, Message.user("from the train"))
        monkeypatch.setattr(SpecWizard, "send_message", unreachable)

        result = runner.invoke(main.cli, ["chat", session.id, "back online"])

        assert result.exit_code == 0
        history = cli_manager.get_session(session.id).state.conversation_history
        assert [m.content for m in history] == ["from the train"]
        assert [m.content for m in cli_manager.get_offline_messages(session.id)] == ["back online"]


class TestResume:
    """Test resuming from a magic link."""

    def test_resume_syncs_offline_messages(self, runner, cli_manager):
        session = cli_manager.create_session()
        token = cli_manager.generate_magic_link(session.id)
        cli_manager.queue_offline_message(session.id, Message.user("queued"))

        result = runner.invoke(main.cli, ["resume", token])

        assert result.exit_code == 0
        assert "Synced 1 offline messages" in result.output
        assert cli_manager.get_offline_messages(session.id) == []

    def test_failed_sync_reports_error(self, runner, cli_manager, monkeypatch):
        session = cli_manager.create_session()
        token = cli_manager.generate_magic_link(session.id)
        cli_manager.queue_offline_message(session.id, Message.user("queued"))
        monkeypatch.setattr(cli_manager, "sync_offline_messages", unreachable)

        result = runner.invoke(main.cli, ["resume", token])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Error:" in result.output
        assert [m.content for m in cli_manager.get_offline_messages(session.id)] == ["queued"]

    def test_bad_token(self, runner, cli_manager):
        result = runner.invoke(main.cli, ["resume", "nope"])
        assert result.exit_code == 1
        assert "Error:" in result.output
