"""
Authentication service for the TrueLocal backend.

Accounts live with the hosted auth provider; this module only verifies the
access tokens it issues (PyJWT, shared HS256 secret and ``authenticated``
audience) and resolves the ``sub`` claim to a profile row.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from truelocal.core.config import settings
from truelocal.models import Profile

ACCESS_TOKEN_TTL: timedelta = timedelta(hours=1)


def create_access_token(
    user_id: uuid.UUID,
    *,
    email: str | None = None,
    expires_in: timedelta = ACCESS_TOKEN_TTL,
) -> str:
    """Mint a token shaped like the auth provider's.

    Used by local tooling and tests; production tokens come from the
    provider itself.
    """
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is otherwise invalid.
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
    )


def subject_from_token(token: str) -> uuid.UUID:
    """Return the profile id carried by a valid token.

    Raises:
        ValueError: If the token is invalid, expired or has a bad subject.
    """
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise ValueError("Access token has expired.")
    except jwt.InvalidTokenError:
        raise ValueError("Invalid access token.")

    subject = payload.get("sub")
    if subject is None:
        raise ValueError("Invalid token: missing subject.")
    try:
        return uuid.UUID(subject)
    except (ValueError, AttributeError, TypeError):
        raise ValueError("Invalid token: malformed subject.")


async def get_current_profile(db: AsyncSession, token: str) -> Profile:
    """Decode an access token and return the caller's profile.

    Raises:
        ValueError: If the token is invalid or no profile exists for it.
    """
    user_id = subject_from_token(token)
    profile = await db.get(Profile, user_id)
    if profile is None:
        raise ValueError("Profile not found.")
    return profile
