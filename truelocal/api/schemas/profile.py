"""
Pydantic v2 schemas for the Profiles API
========================================

Request/response schemas for the caller's own profile: signup record,
edits, account-type switch and the navbar unread badge.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from truelocal.models import UserType

from .common import CamelModel


class ProfileOut(CamelModel):
    """Full profile as seen by its owner."""

    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    user_type: UserType
    business_name: Optional[str] = None
    business_description: Optional[str] = None
    service_area: Optional[str] = None
    years_experience: Optional[int] = None
    verified: bool = False
    created_at: datetime
    updated_at: datetime


class ProfileCreate(CamelModel):
    """Profile record written right after signup with the auth provider."""

    email: str = Field(min_length=3, max_length=320)
    full_name: Optional[str] = Field(default=None, max_length=200)
    user_type: UserType = Field(default=UserType.CUSTOMER)
    phone: Optional[str] = Field(default=None, max_length=30)


class ProfileUpdate(CamelModel):
    """Editable profile fields.  Only the fields sent are written."""

    full_name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, min_length=3, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=30)
    avatar_url: Optional[str] = None
    business_name: Optional[str] = Field(default=None, max_length=200)
    business_description: Optional[str] = None
    service_area: Optional[str] = Field(default=None, max_length=200)
    years_experience: Optional[int] = Field(default=None, ge=0, le=80)


class UserTypeSwitchRequest(CamelModel):
    user_type: UserType


class UserTypeSwitchResponse(CamelModel):
    """``changed`` is False when the account already had the requested type."""

    profile: ProfileOut
    changed: bool


class UnreadCountResponse(CamelModel):
    unread_count: int = Field(ge=0, description="Sum of the caller's unread counters")
