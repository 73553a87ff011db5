"""Agent implementations for Spec Wizard.

Each agent wraps one kind of LLM call in the conversation workflow.
"""

from .base_agent import BaseAgent, TokenUsage, parse_json_response, strip_code_fences
from .completeness import empty_sections, evaluate_completeness, merge_sections
from .conversation_agent import (
    ConversationAgent,
    ConversationStage,
    parse_quick_options,
    select_stage,
)
from .synthesis_agent import SpecSynthesisAgent

__all__ = [
    # Base
    "BaseAgent",
    "TokenUsage",
    "parse_json_response",
    "strip_code_fences",
    # Completeness
    "empty_sections",
    "evaluate_completeness",
    "merge_sections",
    # Conversation
    "ConversationAgent",
    "ConversationStage",
    "parse_quick_options",
    "select_stage",
    # Synthesis
    "SpecSynthesisAgent",
]
