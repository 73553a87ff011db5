"""Conversation message contracts."""

from enum import Enum
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import ConfigDict, Field, field_validator

from .common import CamelModel, as_naive_utc, utcnow


class Role(str, Enum):
    """Who authored a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(CamelModel):
    """A single conversation turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex, description="Unique message id")
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Optional[Dict[str, Any]] = Field(
        None,
        description="Free-form flags, e.g. {'specUpdated': true}",
    )

    @field_validator("timestamp")
    @classmethod
    def _to_naive_utc(cls, value: datetime) -> datetime:
        return as_naive_utc(value)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, **metadata: Any) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, metadata=metadata or None)

    def with_metadata(self, **metadata: Any) -> "Message":
        """Return a copy with extra metadata merged in (same id)."""
        merged = {**(self.metadata or {}), **metadata}
        return self.model_copy(update={"metadata": merged})
