"""
Pydantic v2 schemas for the Conversations API
=============================================

Request/response schemas for customer/provider conversations and their
messages.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from .common import CamelModel, ProfileSummary


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class ConversationCreate(CamelModel):
    """Open (or reuse) the conversation with another user.

    ``participant_id`` is the provider when the caller is a customer and
    the customer when the caller is a provider.
    """

    participant_id: uuid.UUID
    service_id: Optional[uuid.UUID] = None
    initial_message: Optional[str] = Field(default=None, max_length=1000)


class MessageCreate(CamelModel):
    message: str = Field(min_length=1, max_length=1000)
    client_ref: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Client-generated id echoed back to replace the optimistic entry",
    )

    @field_validator("message")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be blank")
        return v


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class ConversationServiceSummary(CamelModel):
    id: uuid.UUID
    title: str


class ConversationOut(CamelModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    provider_id: uuid.UUID
    service_id: Optional[uuid.UUID] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    customer_unread: int
    provider_unread: int
    created_at: datetime
    updated_at: datetime
    customer_profile: Optional[ProfileSummary] = None
    provider_profile: Optional[ProfileSummary] = None
    service: Optional[ConversationServiceSummary] = None


class MessageOut(CamelModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    message: str
    client_ref: Optional[str] = None
    created_at: datetime
    sender_profile: Optional[ProfileSummary] = None
