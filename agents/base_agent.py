"""Base agent class that all specialized agents inherit from.

Every agent:
- Builds a prompt from typed contracts
- Calls the LLM through an injected provider
- Parses the (optionally fenced) JSON it gets back
- Tracks token usage
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from providers import LLMProvider, LLMResponse, get_provider

logger = logging.getLogger(__name__)

# One opening fence (``` plus optional language tag) and one closing fence.
_OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_CLOSING_FENCE = re.compile(r"\r?\n?```\s*$")


class TokenUsage(BaseModel):
    """Track token usage and cost across calls."""
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0

    def add(self, response: LLMResponse) -> None:
        self.input_tokens += response.input_tokens
        self.output_tokens += response.output_tokens
        self.cost += response.cost


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang fence and a trailing ``` fence, if present."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    text = _OPENING_FENCE.sub("", text, count=1)
    text = _CLOSING_FENCE.sub("", text, count=1)
    return text.strip()


def parse_json_response(response_text: str) -> Any:
    """Parse an LLM response that is expected to be (fenced) JSON.

    Raises:
        json.JSONDecodeError: If response isn't valid JSON
    """
    stripped = strip_code_fences(response_text)
    if stripped != response_text.strip():
        logger.debug("Stripped markdown code fences from response")
    return json.loads(stripped)


class BaseAgent(ABC):
    """Base class for all Spec Wizard agents.

    Responsibilities:
    - Owns the LLM provider, model and sampling parameters
    - Sends chat messages and records token usage
    """

    def __init__(
        self,
        role: str,
        provider: Optional[LLMProvider] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ):
        """Initialize the agent.

        Args:
            role: Agent role, used for logging and LiteLLM metadata
            provider: LLM provider; built from the model name if not given
            model: Model name or router group (chat, synthesis)
            temperature: Sampling temperature for every call
            max_tokens: Maximum tokens per call
        """
        self.role = role
        self.llm_provider: LLMProvider = provider or get_provider(model=model, metadata={"agent": role})
        self.model = model or self.llm_provider.default_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.total_usage = TokenUsage()

    def _complete(self, messages: List[Dict[str, str]]) -> LLMResponse:
        """Call the LLM. Provider errors propagate to the caller."""
        response = self.llm_provider.complete(
            messages=messages,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        self.total_usage.add(response)
        return response

    @abstractmethod
    def get_task_description(self) -> str:
        """Return a description of what this agent does.

        Used for logging and debugging.
        """
        pass
