"""Session contracts: lifecycle status, aggregated state and contact details."""

from enum import Enum
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .common import CamelModel, utcnow
from .message_contracts import Message
from .specification_contracts import CompletenessState, LockedSection, Specification


class SessionStatus(str, Enum):
    """Session lifecycle. The only transition is active -> abandoned."""
    ACTIVE = "active"
    ABANDONED = "abandoned"


class ContactInfo(CamelModel):
    """Optional contact details captured before handoff."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    budget_range: Optional[str] = None
    timeline: Optional[str] = None
    referral_source: Optional[str] = None
    urgency: Optional[str] = None


class SessionState(CamelModel):
    """Everything persisted for a session, viewed as one consistent document."""
    conversation_history: List[Message] = Field(default_factory=list)
    specification: Specification
    completeness: CompletenessState = Field(default_factory=CompletenessState)
    locked_sections: List[LockedSection] = Field(default_factory=list)
    user_info: Optional[ContactInfo] = None

    @classmethod
    def initial(cls, session_id: str, now: Optional[datetime] = None) -> "SessionState":
        return cls(specification=Specification.empty(session_id, last_updated=now))


class Session(CamelModel):
    """A session with its metadata and reconstructed state."""
    id: str
    created_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: datetime = Field(default_factory=utcnow)
    magic_link_token: Optional[str] = None
    magic_link_expires_at: Optional[datetime] = None
    status: SessionStatus = SessionStatus.ACTIVE
    state: SessionState
