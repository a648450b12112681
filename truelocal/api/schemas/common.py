"""
Shared Pydantic v2 building blocks for the TrueLocal API schemas.

All JSON responses use camelCase field names via Pydantic's alias
generator to match the web client convention.  Requests accept either
spelling.
"""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict


def _to_camel(snake: str) -> str:
    """Convert a snake_case string to camelCase."""
    parts = snake.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    """Base model that serializes field names to camelCase in JSON."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=_to_camel,
    )


class ProfileSummary(CamelModel):
    """The slice of a profile embedded in listings, bookings and messages."""

    id: uuid.UUID
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    business_name: Optional[str] = None
    verified: bool = False


class ErrorResponse(BaseModel):
    """Body returned by the support chat proxy on failure."""

    error: str
