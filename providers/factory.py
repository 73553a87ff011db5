"""Factory for creating LLM providers."""

import os
from typing import Dict, Optional

from .base import LLMProvider
from .litellm_provider import LiteLLMProvider, MODEL_ALIASES, to_litellm_model


# Env var LiteLLM reads for each provider
PROVIDER_KEYS: Dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}


def get_provider(
    provider_name: Optional[str] = None,
    model: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> LLMProvider:
    """Get an LLM provider instance.

    Args:
        provider_name: Explicit provider name (anthropic, openai, gemini, deepseek)
        model: Model name or router group (chat, synthesis); without a provider
               the provider is auto-detected from the model name

    Returns:
        LLMProvider instance

    Examples:
        get_provider("anthropic")            # Claude Sonnet
        get_provider(model="gpt-4o")         # OpenAI
        get_provider(model="synthesis")      # Router group with fallbacks
    """
    return LiteLLMProvider(
        default_model=to_litellm_model(provider_name, model),
        metadata=metadata,
    )


def list_providers() -> Dict[str, bool]:
    """List all providers and their availability.

    Returns:
        Dict mapping provider name to availability status
    """
    return {
        name: bool(os.environ.get(PROVIDER_KEYS[name], "").strip())
        for name in MODEL_ALIASES
    }
