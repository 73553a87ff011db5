"""Conversation Agent - The Interviewer.

Produces the assistant's next chat reply. The system prompt depends on the
conversation stage, which is derived from how complete the specification is.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Tuple

from agents.base_agent import BaseAgent
from config import settings
from contracts import MINIMUM_SECTIONS, Message, Role, SessionState
from providers import LLMProvider


class ConversationStage(str, Enum):
    """Where the interview is up to."""
    INITIAL = "initial"
    DISCOVERY = "discovery"
    REFINEMENT = "refinement"
    VALIDATION = "validation"
    COMPLETION = "completion"


_QUICK_OPTIONS = re.compile(r"^Quick options:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


def parse_quick_options(content: str) -> Optional[Tuple[str, List[str]]]:
    """Split a reply into its text and the options on its "Quick options:" line."""
    match = _QUICK_OPTIONS.search(content)
    if not match:
        return None
    options = [
        opt.strip().strip("[]").strip()
        for opt in match.group(1).split("|")
    ]
    text = _QUICK_OPTIONS.sub("", content).strip()
    return text, [opt for opt in options if opt]


def select_stage(state: SessionState) -> ConversationStage:
    """Pick the stage from the specification's version and missing sections."""
    if not state.conversation_history or state.specification.version == 0:
        return ConversationStage.INITIAL
    missing = set(state.completeness.missing_sections)
    if missing & set(MINIMUM_SECTIONS):
        return ConversationStage.DISCOVERY
    if missing:
        return ConversationStage.REFINEMENT
    if state.completeness.ready_for_handoff and state.locked_sections:
        return ConversationStage.COMPLETION
    return ConversationStage.VALIDATION


class ConversationAgent(BaseAgent):
    """The Interviewer - asks one sharp question at a time.

    Focuses on what SOFTWARE needs to be built, never business strategy.
    """

    BASE_PROMPT = """You are a software requirements specialist helping users build specifications for digital products.

YOUR ONLY JOB: Figure out what SOFTWARE/WEBSITE/APP needs to be built.
You are not a business strategy consultant, a market researcher or a product marketer.
Assume the user came here to BUILD something digital.

CRITICAL RULE: ASK ONE QUESTION AT A TIME.
Never ask two or more questions in one response. Ask the first one, then stop and wait.

QUICK RESPONSE BUTTONS:
When a question has obvious categorical answers, put the options on their own line after the question:

Quick options: [Website] | [Mobile App] | [Booking System] | [Something else]

Always include "Something else" as the last option. Skip the line only for truly open-ended questions.

TONE & BEHAVIOUR:
- Direct, concise, no waffle; 2-4 sentences
- Challenge vague thinking; don't just "yes-and"
- Use product expertise: never ask questions with obvious answers
- Never ask for information already provided

LANGUAGE:
- UK English spelling and grammar (optimise, behaviour, colour)
- Plain English, no jargon: say "features" not "functionalities", "problems" not "pain points",
  "types of users" not "user personas", "people involved" not "stakeholders"

DECISIONS:
- One clear path: state it and drive forward
- 2-3 valid options: list them, give your recommendation, then STOP and wait"""

    STAGE_PROMPTS: Dict[ConversationStage, str] = {
        ConversationStage.INITIAL: """CURRENT PHASE: Initial Discovery

- Quickly identify what SOFTWARE they need (online shop, booking system, mobile app, ...)
- "I want to sell X" means an online shop; "customers book Z" means a booking system
- Remind them to keep it general: no confidential information
- Ask about the PRODUCT, not profit margins or marketing""",
        ConversationStage.DISCOVERY: """CURRENT PHASE: Discovery

- Who will use the software (customers, staff, both?)
- What they are trying to accomplish with it
- What "good enough for version 1" looks like, and what is out
Don't move on until these are crisp. If they're vague, say so.""",
        ConversationStage.REFINEMENT: """CURRENT PHASE: Refinement

- Map out how people will actually use it (the main flows)
- What the system needs to do, specifically
- Speed, scale, security and reliability needs
- Rules, risks and constraints
You are the expert: suggest best practice and ask them to confirm rather than asking them to design it.""",
        ConversationStage.VALIDATION: """CURRENT PHASE: Validation

- Read back what we've captured as short bullets
- Check for gaps that would block engineering
- Confirm understanding and surface open questions""",
        ConversationStage.COMPLETION: """CURRENT PHASE: Completion

- Summarise what we've captured in 3-5 bullets
- Highlight remaining open questions or assumptions
- Offer next steps: export, share link, submit for a quote""",
    }

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        model: Optional[str] = None,
        history_window: int = 20,
    ):
        """Initialize the Conversation Agent.

        Args:
            provider: LLM provider (defaults to LiteLLM on settings.chat_model)
            model: Model name or router group override
            history_window: Number of most recent turns sent with each call
        """
        super().__init__(
            role="conversation",
            provider=provider,
            model=model or settings.chat_model,
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
        )
        self.history_window = history_window

    def get_task_description(self) -> str:
        return "Interview the user about the software they want built"

    def get_system_prompt(self, state: SessionState) -> str:
        stage = select_stage(state)
        parts = [self.BASE_PROMPT, self.STAGE_PROMPTS[stage]]
        if state.locked_sections:
            locked = "\n".join(f"- {s.name}: {s.summary}" for s in state.locked_sections)
            parts.append(f"LOCKED DECISIONS (do not re-open these):\n{locked}")
        if state.completeness.missing_sections:
            parts.append(
                "Sections still missing from the specification: "
                + ", ".join(state.completeness.missing_sections)
            )
        return "\n\n".join(parts)

    def reply(self, state: SessionState) -> str:
        """Generate the assistant's next message for the conversation so far."""
        history: List[Message] = [
            m for m in state.conversation_history if m.role != Role.SYSTEM
        ][-self.history_window:]
        messages = [{"role": "system", "content": self.get_system_prompt(state)}]
        messages.extend({"role": m.role.value, "content": m.content} for m in history)
        return self._complete(messages).content.strip()
