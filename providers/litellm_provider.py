"""LiteLLM-backed provider. Single implementation for all LLM calls."""

import logging
from typing import Dict, List, Optional

from config import settings
from .base import LLMProvider, LLMResponse
from .router import ROUTER_GROUPS, get_router

logger = logging.getLogger(__name__)


# LiteLLM model strings: provider/model-name (OpenAI can omit prefix)
DEFAULT_MODELS = {
    "anthropic": "anthropic/claude-sonnet-4-20250514",
    "openai": "gpt-4o-mini",
    "gemini": "gemini/gemini-2.0-flash",
    "deepseek": "deepseek/deepseek-chat",
}

# Map provider + optional model -> LiteLLM model string
MODEL_ALIASES = {
    "anthropic": {
        None: "anthropic/claude-sonnet-4-20250514",
        "claude-sonnet": "anthropic/claude-sonnet-4-20250514",
        "claude-opus": "anthropic/claude-opus-4-20250514",
        "claude-haiku": "anthropic/claude-3-5-haiku-20241022",
    },
    "openai": {
        None: "gpt-4o-mini",
        "gpt-4o": "gpt-4o",
        "gpt-4o-mini": "gpt-4o-mini",
        "gpt-4-turbo": "gpt-4-turbo",
        "o1": "o1",
        "o1-mini": "o1-mini",
    },
    "gemini": {
        None: "gemini/gemini-2.0-flash",
        "gemini-2.0-flash": "gemini/gemini-2.0-flash",
        "gemini-2.5-flash": "gemini/gemini-2.5-flash",
        "gemini-2.5-pro": "gemini/gemini-2.5-pro",
    },
    "deepseek": {
        None: "deepseek/deepseek-chat",
        "deepseek-chat": "deepseek/deepseek-chat",
        "deepseek-reasoner": "deepseek/deepseek-reasoner",
    },
}

_PROVIDER_SYNONYMS = {"claude": "anthropic", "gpt": "openai", "google": "gemini"}


def _match_alias(aliases: Dict[Optional[str], str], model_lower: str) -> Optional[str]:
    # Prefer longest alias match first (e.g. gpt-4o-mini before gpt-4o)
    for alias in sorted((a for a in aliases if a), key=len, reverse=True):
        if model_lower == alias or model_lower.startswith(alias + "-") or model_lower.startswith(alias + "."):
            return aliases[alias]
    return None


def to_litellm_model(provider_name: Optional[str], model: Optional[str]) -> str:
    """Map provider + model to a LiteLLM model string (router groups pass through)."""
    if model and model in ROUTER_GROUPS:
        return model
    if provider_name:
        key = _PROVIDER_SYNONYMS.get(provider_name.lower(), provider_name.lower())
        if key not in MODEL_ALIASES:
            raise ValueError(
                f"Unknown provider: {provider_name}. "
                f"Available: {sorted(MODEL_ALIASES)}"
            )
        aliases = MODEL_ALIASES[key]
        if model:
            matched = _match_alias(aliases, model.lower())
            if matched:
                return matched
            # no alias match: OpenAI works without a prefix, the rest need one
            return model if key == "openai" else f"{key}/{model}"
        return aliases[None]
    if model:
        model_lower = model.lower()
        for aliases in MODEL_ALIASES.values():
            matched = _match_alias(aliases, model_lower)
            if matched:
                return matched
        return model
    return DEFAULT_MODELS["openai"]


class LiteLLMProvider(LLMProvider):
    """Single provider that delegates to litellm.completion() or the task Router."""

    def __init__(
        self,
        default_model: str,
        metadata: Optional[dict] = None,
        num_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize with the LiteLLM model string to use by default.

        Args:
            default_model: LiteLLM model string or router group (chat, synthesis).
            metadata: Optional dict passed to litellm (e.g. agent name) for callbacks.
            num_retries: Retries on transient API failure (defaults to settings).
            timeout: Per-call timeout in seconds (defaults to settings).
        """
        self._default_model = default_model
        self._metadata = metadata or {}
        self.num_retries = settings.api_max_retries if num_retries is None else num_retries
        self.timeout = settings.api_timeout_seconds if timeout is None else timeout

    @property
    def name(self) -> str:
        return "litellm"

    @property
    def default_model(self) -> str:
        return self._default_model

    def set_metadata(self, metadata: dict) -> None:
        """Merge metadata passed through to LiteLLM callbacks."""
        self._metadata.update(metadata)

    def complete(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        resolved_model = model or self._default_model
        kwargs = {
            "model": resolved_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "metadata": {**self._metadata},
        }
        if resolved_model in ROUTER_GROUPS:
            # Router owns retries, timeouts and cross-provider fallbacks
            response = get_router().completion(**kwargs)
        else:
            import litellm
            response = litellm.completion(
                num_retries=self.num_retries,
                timeout=self.timeout,
                **kwargs,
            )

        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0
        hidden = getattr(response, "_hidden_params", None) or {}
        cost = float(hidden.get("response_cost", 0) or 0)
        model_id = getattr(response, "model", None) or resolved_model
        logger.debug("LLM call %s: %d in / %d out tokens", model_id, input_tokens, output_tokens)

        return LLMResponse(
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=model_id,
            provider=self.name,
            cost=cost,
        )

    def is_available(self) -> bool:
        """LiteLLM reads API keys from env; we consider it available if the model is set."""
        return bool(self._default_model)
