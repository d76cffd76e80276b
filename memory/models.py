"""
SQLAlchemy models for the companion chat service.
Defines the tables for companions, their conversation turns and memory records.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Index,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Companion(Base):
    """Companion table - persona definitions created by users."""

    __tablename__ = "companions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    user_name = Column(String(255), nullable=False)
    src = Column(String(1000), nullable=True)  # Avatar image URL
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    instructions = Column(Text, nullable=False)
    seed = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    messages = relationship("Message", back_populates="companion", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Companion(id={self.id}, name='{self.name}')>"


class Message(Base):
    """Conversation turns - append-only transcript per companion."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_companion_created", "companion_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    companion_id = Column(String(36), ForeignKey("companions.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # "user" or "system"
    content = Column(Text, nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    companion = relationship("Companion", back_populates="messages")

    def __repr__(self):
        return f"<Message(companion_id={self.companion_id}, role='{self.role}', created_at={self.created_at})>"


class MemoryRecord(Base):
    """Memory records - long-term context log keyed by (persona, user, model)."""

    __tablename__ = "memory_records"
    __table_args__ = (
        Index("idx_memory_records_key_created", "persona_id", "user_id", "model_name", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    persona_id = Column(String(36), nullable=False)
    user_id = Column(String(255), nullable=False)
    model_name = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<MemoryRecord(persona_id={self.persona_id}, user_id={self.user_id}, model='{self.model_name}')>"
