"""LiteLLM Router with task groups.

Model list is built dynamically: only models whose provider has an API key
in the environment are included. Add/remove keys in .env and the Router adapts.
"""

import os
from typing import Any, Dict, List

from config import settings

_task_router = None

# Router group names. A model string equal to one of these goes through the Router.
ROUTER_GROUPS = ("chat", "synthesis")

# All candidate models per group, in preference order.
# The Router will only see entries whose API key is set.
_ALL_GROUP_MODELS: List[Dict[str, Any]] = [
    # chat: short conversational replies, cheap and fast
    {"model_name": "chat", "litellm_params": {"model": "gpt-4o-mini"}, "order": 1},
    {"model_name": "chat", "litellm_params": {"model": "anthropic/claude-3-5-haiku-20241022"}, "order": 2},
    {"model_name": "chat", "litellm_params": {"model": "gemini/gemini-2.0-flash"}, "order": 3},
    {"model_name": "chat", "litellm_params": {"model": "deepseek/deepseek-chat"}, "order": 4},
    # synthesis: full specification rewrite, needs reliable JSON
    {"model_name": "synthesis", "litellm_params": {"model": "gpt-4o"}, "order": 1},
    {"model_name": "synthesis", "litellm_params": {"model": "anthropic/claude-sonnet-4-20250514"}, "order": 2},
    {"model_name": "synthesis", "litellm_params": {"model": "gemini/gemini-2.5-pro"}, "order": 3},
    {"model_name": "synthesis", "litellm_params": {"model": "deepseek/deepseek-chat"}, "order": 4},
]

# Map model prefix → env var that must be set
_PROVIDER_KEY_MAP = {
    "gpt-": "OPENAI_API_KEY",
    "gemini/": "GOOGLE_API_KEY",
    "deepseek/": "DEEPSEEK_API_KEY",
    "anthropic/": "ANTHROPIC_API_KEY",
}


def _has_key(model_string: str) -> bool:
    """Check if the provider for this model has an API key set."""
    for prefix, env_var in _PROVIDER_KEY_MAP.items():
        if model_string.startswith(prefix):
            return bool(os.environ.get(env_var, "").strip())
    return False


def get_group_model_list() -> List[Dict[str, Any]]:
    """Build model_list filtered to providers with API keys present."""
    return [
        entry for entry in _ALL_GROUP_MODELS
        if _has_key(entry["litellm_params"]["model"])
    ]


def create_router():
    """Create LiteLLM Router with group model list and fallbacks."""
    from litellm import Router
    model_list = get_group_model_list()
    if not model_list:
        raise RuntimeError(
            "No LLM providers configured. Set at least one API key in .env "
            "(OPENAI_API_KEY, GOOGLE_API_KEY, DEEPSEEK_API_KEY, ANTHROPIC_API_KEY)."
        )
    return Router(
        model_list=model_list,
        num_retries=settings.api_max_retries,
        timeout=settings.api_timeout_seconds,
        fallbacks=[{"chat": ["synthesis"]}],
        enable_pre_call_checks=False,
    )


def get_router():
    """Return the shared Router instance."""
    global _task_router
    if _task_router is None:
        _task_router = create_router()
    return _task_router


def reset_router() -> None:
    """Drop the shared Router so the next call rebuilds it from the environment."""
    global _task_router
    _task_router = None
