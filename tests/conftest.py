"""Shared fixtures: in-memory store, session manager and a scripted LLM."""

import json
from typing import Dict, List, Optional, Union

import pytest

from client import InMemoryOfflineQueue
from config import Settings
from orchestrator import SessionManager
from providers import LLMProvider, LLMResponse
from storage import create_db_engine, create_session_factory


class ScriptedProvider(LLMProvider):
    """Returns queued responses in order; an Exception in the queue is raised."""

    def __init__(self, responses: Optional[List[Union[str, Exception]]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict] = []

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def default_model(self) -> str:
        return "scripted-model"

    def queue(self, *responses: Union[str, Exception]) -> None:
        self.responses.extend(responses)

    def complete(self, messages, model=None, temperature=0.7, max_tokens=4096) -> LLMResponse:
        self.calls.append({
            "messages": messages,
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if not self.responses:
            raise AssertionError("ScriptedProvider ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return LLMResponse(
            content=response,
            input_tokens=10,
            output_tokens=20,
            model=model or self.default_model,
            provider=self.name,
        )

    def is_available(self) -> bool:
        return True


def synthesis_json(missing=None, **summary) -> str:
    """Build a synthesis response body with the given plain-English summary fields."""
    return json.dumps({
        "spec": {
            "plainEnglishSummary": summary,
            "formalPRD": {},
        },
        "missingSections": missing if missing is not None else [],
    })


@pytest.fixture
def session_factory():
    return create_session_factory(create_db_engine("sqlite://", echo=False))


@pytest.fixture
def test_settings():
    return Settings(_env_file=None)


@pytest.fixture
def offline_queue():
    return InMemoryOfflineQueue()


@pytest.fixture
def manager(session_factory, offline_queue, test_settings):
    return SessionManager(session_factory, offline_queue=offline_queue, settings=test_settings)


@pytest.fixture
def scripted_provider():
    return ScriptedProvider()
