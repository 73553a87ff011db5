"""Orchestrator module for session persistence and chat turns."""

from .errors import (
    SpecWizardError,
    SessionNotFoundError,
    InvalidMagicLinkError,
    SessionAbandonedError,
    StaleSpecificationError,
)
from .session_manager import SessionManager
from .spec_wizard import SpecWizard, TurnResult, messages_since_last_synthesis

__all__ = [
    "SpecWizardError",
    "SessionNotFoundError",
    "InvalidMagicLinkError",
    "SessionAbandonedError",
    "StaleSpecificationError",
    "SessionManager",
    "SpecWizard",
    "TurnResult",
    "messages_since_last_synthesis",
]
