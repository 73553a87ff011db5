"""Exceptions raised by the session layer."""

from typing import Optional


class SpecWizardError(Exception):
    """Base class for Spec Wizard errors."""


class SessionNotFoundError(SpecWizardError):
    """No session exists with the given id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class InvalidMagicLinkError(SpecWizardError):
    """Token is unknown, superseded, revoked or expired."""

    def __init__(self, message: str = "Invalid or expired magic link token"):
        super().__init__(message)


class SessionAbandonedError(SpecWizardError):
    """Write rejected because the session is abandoned."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session is abandoned: {session_id}")


class StaleSpecificationError(SpecWizardError):
    """The stored specification moved on since the caller last read it."""

    def __init__(self, session_id: str, expected: int, actual: Optional[int]):
        self.session_id = session_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Specification for {session_id} is at version {actual}, expected {expected}"
        )
