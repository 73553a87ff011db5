"""Pydantic contracts for the Spec Wizard system.

Everything exchanged between the synthesis engine, the session manager and
the client is typed through these contracts.
"""

from .common import CamelModel, DocumentModel, as_naive_utc, utcnow

from .message_contracts import (
    Role,
    Message,
)

from .specification_contracts import (
    REQUIRED_SECTIONS,
    MINIMUM_SECTIONS,
    Priority,
    MvpDefinition,
    PlainEnglishSummary,
    Requirement,
    NonFunctionalRequirement,
    FormalPRD,
    Specification,
    CompletenessState,
    LockedSection,
)

from .session_contracts import (
    SessionStatus,
    ContactInfo,
    SessionState,
    Session,
)

from .synthesis_contracts import (
    SynthesisMode,
    UpdateInput,
    FinalizeInput,
    SynthesisInput,
    SynthesisOutput,
    SpecBody,
    SynthesisPayload,
)

__all__ = [
    # Common
    "CamelModel",
    "DocumentModel",
    "utcnow",
    "as_naive_utc",
    # Messages
    "Role",
    "Message",
    # Specification
    "REQUIRED_SECTIONS",
    "MINIMUM_SECTIONS",
    "Priority",
    "MvpDefinition",
    "PlainEnglishSummary",
    "Requirement",
    "NonFunctionalRequirement",
    "FormalPRD",
    "Specification",
    "CompletenessState",
    "LockedSection",
    # Sessions
    "SessionStatus",
    "ContactInfo",
    "SessionState",
    "Session",
    # Synthesis
    "SynthesisMode",
    "UpdateInput",
    "FinalizeInput",
    "SynthesisInput",
    "SynthesisOutput",
    "SpecBody",
    "SynthesisPayload",
]
