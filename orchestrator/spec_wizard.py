"""Spec Wizard - runs one chat turn end to end.

For each user message the wizard:
1. Loads the session from the Session Manager
2. Appends the user message and asks the Conversation Agent for a reply
3. Runs an update-mode synthesis over the turns since the last synthesis
4. Recomputes completeness and saves the whole state back

A failed turn is preserved (error record plus the user's message) before the
error propagates to the caller.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from agents import ConversationAgent, SpecSynthesisAgent, evaluate_completeness
from config import settings
from contracts import Message, Role, Session, SessionState
from orchestrator.errors import SessionNotFoundError
from orchestrator.session_manager import SessionManager

logger = logging.getLogger(__name__)

SPEC_UPDATED = "specUpdated"


@dataclass
class TurnResult:
    """Outcome of a chat turn or a finalize pass."""
    session_id: str
    state: SessionState
    reply: Optional[Message] = None

    @property
    def spec_version(self) -> int:
        return self.state.specification.version

    @property
    def missing_sections(self) -> List[str]:
        return self.state.completeness.missing_sections


def messages_since_last_synthesis(history: List[Message], window: int) -> List[Message]:
    """Messages after the last assistant turn flagged ``specUpdated``, at most ``window``."""
    start = 0
    for index in range(len(history) - 1, -1, -1):
        message = history[index]
        if message.role == Role.ASSISTANT and (message.metadata or {}).get(SPEC_UPDATED):
            start = index + 1
            break
    pending = [m for m in history[start:] if m.role != Role.SYSTEM]
    return pending[-window:]


class SpecWizard:
    """Ties the conversation and synthesis agents to the Session Manager."""

    def __init__(
        self,
        session_manager: SessionManager,
        synthesis_agent: Optional[SpecSynthesisAgent] = None,
        conversation_agent: Optional[ConversationAgent] = None,
        message_window: Optional[int] = None,
    ):
        """Initialize the Spec Wizard.

        Args:
            session_manager: Persistence for sessions and specifications
            synthesis_agent: Defaults to a SpecSynthesisAgent on settings.synthesis_model
            conversation_agent: Defaults to a ConversationAgent on settings.chat_model
            message_window: Max new messages per synthesis (settings.synthesis_message_window)
        """
        self.session_manager = session_manager
        self.synthesis_agent = synthesis_agent or SpecSynthesisAgent()
        self.conversation_agent = conversation_agent or ConversationAgent()
        self.message_window = message_window or settings.synthesis_message_window

    def start(self) -> Session:
        return self.session_manager.create_session()

    def _load(self, session_id: str) -> Session:
        session = self.session_manager.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def send_message(self, session_id: str, text: str) -> TurnResult:
        """Run one chat turn.

        Raises:
            SessionNotFoundError: Unknown session id
            Exception: Any agent or storage failure, after the turn is preserved
        """
        session = self._load(session_id)
        state = session.state
        user_message = Message.user(text)
        in_progress = state.model_copy(update={
            "conversation_history": [*state.conversation_history, user_message],
        })

        try:
            reply_text = self.conversation_agent.reply(in_progress)
            reply = Message.assistant(reply_text)
            history = [*in_progress.conversation_history, reply]
            in_progress = in_progress.model_copy(update={"conversation_history": history})

            current_spec = state.specification
            result = self.synthesis_agent.update(
                current_spec=current_spec,
                last_messages=messages_since_last_synthesis(history, self.message_window),
                is_first_run=current_spec.version == 0,
            )

            reply = reply.with_metadata(**{SPEC_UPDATED: True})
            new_state = in_progress.model_copy(update={
                "conversation_history": [*history[:-1], reply],
                "specification": result.spec,
                "completeness": evaluate_completeness(result.missing_sections),
            })
            self.session_manager.save_session_state(session_id, new_state)
        except Exception as e:
            logger.error("Turn failed for session %s: %s", session_id, e)
            self.session_manager.preserve_error_state(
                session_id, e, user_input=text, current_state=in_progress,
            )
            raise

        logger.info(
            "Turn complete for %s: spec v%d, missing: %s",
            session_id,
            new_state.specification.version,
            ", ".join(new_state.completeness.missing_sections) or "none",
        )
        return TurnResult(session_id=session_id, state=new_state, reply=reply)

    def finalize(self, session_id: str) -> TurnResult:
        """Polish the specification for handoff and mark it ready."""
        session = self._load(session_id)
        state = session.state

        try:
            result = self.synthesis_agent.finalize(state.specification)
            new_state = state.model_copy(update={
                "specification": result.spec,
                "completeness": evaluate_completeness([]),
            })
            self.session_manager.save_session_state(session_id, new_state)
        except Exception as e:
            logger.error("Finalize failed for session %s: %s", session_id, e)
            self.session_manager.preserve_error_state(session_id, e)
            raise

        logger.info("Finalized session %s at spec v%d", session_id, new_state.specification.version)
        return TurnResult(session_id=session_id, state=new_state)
