"""
Profile Service
===============

Reads and writes the caller's profile record: contact details, business
metadata, avatar and the customer/provider account type.  Also provides
the navbar's total unread message count.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from truelocal.models import Conversation, Profile, UserType, role_column
from truelocal.realtime.changeFeed import ChangeType, serialize_row, stage_change
from truelocal.services import storageService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ProfileError(Exception):
    """Base exception for profile service errors."""
    pass


class ProfileNotFoundError(ProfileError):
    """Raised when the profile does not exist."""
    pass


class ProfileConflictError(ProfileError):
    """Raised when a profile id or email is already taken."""
    pass


class InvalidProfileError(ProfileError, ValueError):
    """Raised when a profile field fails validation."""
    pass


# Fields a user may edit on their own profile
EDITABLE_FIELDS: frozenset[str] = frozenset({
    "full_name",
    "email",
    "phone",
    "avatar_url",
    "business_name",
    "business_description",
    "service_area",
    "years_experience",
})


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> Optional[Profile]:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def _require_profile(db: AsyncSession, user_id: uuid.UUID) -> Profile:
    profile = await get_profile(db, user_id)
    if profile is None:
        raise ProfileNotFoundError(f"Profile '{user_id}' not found")
    return profile


async def get_total_unread_count(
    db: AsyncSession,
    user_id: uuid.UUID,
    user_type: UserType | str,
) -> int:
    """Sum the caller's unread counter across all their conversations."""
    if UserType(user_type) is UserType.CUSTOMER:
        counter = Conversation.customer_unread
    else:
        counter = Conversation.provider_unread
    owner = getattr(Conversation, role_column(user_type))

    stmt = select(func.coalesce(func.sum(counter), 0)).where(owner == user_id)
    result = await db.execute(stmt)
    return int(result.scalar_one())


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_profile(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    email: str,
    full_name: Optional[str] = None,
    user_type: UserType | str = UserType.CUSTOMER,
    phone: Optional[str] = None,
) -> Profile:
    """Create the profile row for a freshly signed-up account."""
    try:
        role = UserType(user_type)
    except ValueError as exc:
        raise InvalidProfileError(f"Unknown user type '{user_type}'") from exc
    if not email or "@" not in email:
        raise InvalidProfileError("A valid email is required")

    profile = Profile(
        id=user_id,
        email=email.strip().lower(),
        full_name=full_name,
        user_type=role,
        phone=phone,
    )
    try:
        async with db.begin_nested():
            db.add(profile)
            await db.flush()
    except IntegrityError as exc:
        raise ProfileConflictError(
            f"A profile for '{user_id}' or '{email}' already exists"
        ) from exc

    stage_change(db, "profiles", ChangeType.INSERT, serialize_row(profile))
    logger.info("Profile created: id=%s type=%s", user_id, role.value)
    return profile


async def update_profile(
    db: AsyncSession,
    user_id: uuid.UUID,
    **fields: Any,
) -> Profile:
    """Write only the editable fields that were supplied."""
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise InvalidProfileError(f"Fields not editable: {', '.join(sorted(unknown))}")

    profile = await _require_profile(db, user_id)
    old = serialize_row(profile)

    if "email" in fields:
        email = fields["email"]
        if not email or "@" not in email:
            raise InvalidProfileError("A valid email is required")
        fields["email"] = email.strip().lower()
    years = fields.get("years_experience")
    if years is not None and years < 0:
        raise InvalidProfileError("years_experience cannot be negative")

    for name, value in fields.items():
        setattr(profile, name, value)

    try:
        async with db.begin_nested():
            await db.flush()
    except IntegrityError as exc:
        raise ProfileConflictError(f"Email '{fields.get('email')}' is already in use") from exc
    await db.refresh(profile)

    stage_change(db, "profiles", ChangeType.UPDATE, serialize_row(profile), old)
    logger.info("Profile updated: id=%s fields=%s", user_id, sorted(fields))
    return profile


async def switch_user_type(
    db: AsyncSession,
    user_id: uuid.UUID,
    user_type: UserType | str,
) -> tuple[Profile, bool]:
    """Switch the account between customer and provider.

    Returns ``(profile, changed)``; ``changed`` is False when the profile
    already had the requested type.
    """
    try:
        target = UserType(user_type)
    except ValueError as exc:
        raise InvalidProfileError(f"Unknown user type '{user_type}'") from exc

    profile = await _require_profile(db, user_id)
    if profile.user_type == target:
        return profile, False

    old = serialize_row(profile)
    profile.user_type = target
    await db.flush()
    await db.refresh(profile)

    stage_change(db, "profiles", ChangeType.UPDATE, serialize_row(profile), old)
    logger.info("Profile %s switched to %s", user_id, target.value)
    return profile, True


async def upload_avatar(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    filename: str,
    content: bytes,
    content_type: str,
) -> Profile:
    """Upload a new avatar and point the profile at it."""
    profile = await _require_profile(db, user_id)
    url = await storageService.upload_avatar(user_id, filename, content, content_type)
    return await update_profile(db, profile.id, avatar_url=url)
