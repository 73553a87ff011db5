"""SQLAlchemy models for the persistent store.

Timestamps are stored as naive UTC. Messages carry an autoincrement ``seq``
that records insertion order and breaks timestamp ties.
"""

from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from contracts import SessionStatus, utcnow


class Base(DeclarativeBase):
    pass


class SessionRecord(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)
    last_accessed_at = mapped_column(DateTime, nullable=False, default=utcnow)
    magic_link_token: Mapped[Optional[str]] = mapped_column(String(128), unique=True, index=True)
    magic_link_expires_at = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SessionStatus.ACTIVE.value)
    locked_sections = mapped_column(JSON, nullable=False, default=list)
    completeness = mapped_column(JSON, nullable=True)
    user_info = mapped_column(JSON, nullable=True)


class MessageRecord(Base):
    __tablename__ = "messages"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp = mapped_column(DateTime, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_ = mapped_column("metadata", JSON, nullable=True)


class SpecificationRecord(Base):
    __tablename__ = "specifications"
    __table_args__ = (
        UniqueConstraint("session_id", "version", name="uq_specifications_session_version"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: uuid4().hex)
    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    plain_english_summary = mapped_column(JSON, nullable=False)
    formal_prd = mapped_column(JSON, nullable=False)
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at = mapped_column(DateTime, nullable=False, default=utcnow)


class ErrorRecord(Base):
    __tablename__ = "errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    error_stack: Mapped[Optional[str]] = mapped_column(Text)
    user_input: Mapped[Optional[str]] = mapped_column(Text)
    timestamp = mapped_column(DateTime, nullable=False, default=utcnow)
