"""LLM Provider abstraction for multi-model support."""

from .base import LLMProvider, LLMResponse
from .factory import get_provider, list_providers
from .litellm_provider import LiteLLMProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "get_provider",
    "list_providers",
]
