"""
SQLAlchemy models for conversations and messages.

There is exactly one conversation per (customer, provider) pair; the unique
constraint is what makes concurrent first contacts converge on one row.
Messages are append-only.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, CreatedAtMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Conversation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("customer_id", "provider_id", name="uq_conversations_pair"),
        Index("ix_conversations_provider_id", "provider_id"),
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Denormalized summary
    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    customer_unread: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    provider_unread: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    customer_profile: Mapped["Profile"] = relationship("Profile", foreign_keys=[customer_id])
    provider_profile: Mapped["Profile"] = relationship("Profile", foreign_keys=[provider_id])
    service: Mapped[Optional["Service"]] = relationship("Service")

    def __repr__(self) -> str:
        return (
            f"<Conversation(id={self.id}, customer={self.customer_id}, "
            f"provider={self.provider_id})>"
        )


class Message(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Correlation id generated by the sending client for optimistic entries
    client_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Relationships
    conversation: Mapped["Conversation"] = relationship("Conversation")
    sender_profile: Mapped["Profile"] = relationship("Profile")

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, conversation_id={self.conversation_id}, "
            f"sender_id={self.sender_id})>"
        )
