"""Tests for the Conversation Agent and stage selection."""

from contracts import (
    CompletenessState,
    LockedSection,
    Message,
    SessionState,
    Specification,
)
from agents import ConversationAgent, ConversationStage, parse_quick_options, select_stage
from tests.conftest import ScriptedProvider


def state_with(version=1, missing=None, locked=None, history=None):
    return SessionState(
        conversation_history=history if history is not None else [Message.user("hi")],
        specification=Specification(id="s", version=version),
        completeness=CompletenessState.from_missing(missing or []),
        locked_sections=locked or [],
    )


class TestSelectStage:
    """Test the stage derived from completeness."""

    def test_initial_without_history(self):
        assert select_stage(state_with(history=[])) == ConversationStage.INITIAL

    def test_initial_before_first_synthesis(self):
        assert select_stage(state_with(version=0, missing=["overview"])) == ConversationStage.INITIAL

    def test_discovery_when_core_missing(self):
        assert select_stage(state_with(missing=["targetUsers", "flows"])) == ConversationStage.DISCOVERY

    def test_refinement_when_only_detail_missing(self):
        assert select_stage(state_with(missing=["nonFunctional"])) == ConversationStage.REFINEMENT

    def test_validation_when_nothing_missing(self):
        assert select_stage(state_with(missing=[])) == ConversationStage.VALIDATION

    def test_completion_with_locked_sections(self):
        locked = [LockedSection(name="Scope", summary="Booking only")]
        assert select_stage(state_with(missing=[], locked=locked)) == ConversationStage.COMPLETION


class TestQuickOptions:
    """Test parsing of the quick-response line."""

    def test_parse_options(self):
        text, options = parse_quick_options(
            "What are you building?\n\nQuick options: [Website] | [Mobile App] | [Something else]"
        )
        assert text == "What are you building?"
        assert options == ["Website", "Mobile App", "Something else"]

    def test_no_options(self):
        assert parse_quick_options("Tell me about your users.") is None


class TestConversationAgent:
    """Test reply generation."""

    def test_reply_sends_system_prompt_and_history(self):
        provider = ScriptedProvider(["  Who is it for?  "])
        agent = ConversationAgent(provider=provider)
        state = state_with(version=0, history=[Message.user("A dog walking app")])

        assert agent.reply(state) == "Who is it for?"

        messages = provider.calls[0]["messages"]
        assert messages[0]["role"] == "system"
        assert "Initial Discovery" in messages[0]["content"]
        assert messages[1] == {"role": "user", "content": "A dog walking app"}

    def test_history_window(self):
        provider = ScriptedProvider(["ok"])
        agent = ConversationAgent(provider=provider, history_window=2)
        history = [Message.user(str(i)) for i in range(5)]
        agent.reply(state_with(history=history))

        sent = [m["content"] for m in provider.calls[0]["messages"][1:]]
        assert sent == ["3", "4"]

    def test_locked_sections_in_prompt(self):
        agent = ConversationAgent(provider=ScriptedProvider())
        locked = [LockedSection(name="Target Users", summary="All parents")]
        prompt = agent.get_system_prompt(state_with(locked=locked, missing=["flows"]))
        assert "Target Users: All parents" in prompt
        assert "flows" in prompt

    def test_usage_tracked(self):
        agent = ConversationAgent(provider=ScriptedProvider(["a", "b"]))
        agent.reply(state_with())
        agent.reply(state_with())
        assert agent.total_usage.input_tokens == 20
        assert agent.total_usage.output_tokens == 40
