"""Persistent store: SQLAlchemy models and engine helpers."""

from .database import create_db_engine, create_session_factory, init_db
from .models import Base, ErrorRecord, MessageRecord, SessionRecord, SpecificationRecord

__all__ = [
    "Base",
    "SessionRecord",
    "MessageRecord",
    "SpecificationRecord",
    "ErrorRecord",
    "create_db_engine",
    "create_session_factory",
    "init_db",
]
