"""
Shared FastAPI dependencies for the TrueLocal backend.

Provides the async database session dependency used by all route handlers,
and authentication dependencies that resolve the caller's profile from the
auth provider's Bearer token.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from truelocal.core.config import settings
from truelocal.models import Profile
from truelocal.realtime.changeFeed import discard_staged, dispatch_staged

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------
# The engine is created once at module import time.  The session factory
# produces lightweight ``AsyncSession`` instances that are scoped to a single
# request via the ``get_db`` dependency below.
# ---------------------------------------------------------------------------


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.sql_echo}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session scoped to one request.

    Commits when the handler returns, rolls back if it raises.  Changes the
    services staged on the session are published to the change feed only
    after the commit succeeds.

    Usage in a route::

        @router.get("/items")
        async def list_items(db: DBSession):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            discard_staged(session)
            raise
        else:
            await dispatch_staged(session)
        finally:
            await session.close()


# ---------------------------------------------------------------------------
# Annotated type alias for convenience
# ---------------------------------------------------------------------------
DBSession = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

_bearer_scheme = HTTPBearer(auto_error=True)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> uuid.UUID:
    """Return the token subject without requiring a profile row.

    Only signup needs this; everything else uses ``get_current_user``.
    """
    from truelocal.services import auth_service

    try:
        return auth_service.subject_from_token(credentials.credentials)
    except ValueError as exc:
        raise _unauthorized(str(exc))


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
    db: DBSession,
) -> Profile:
    """Extract and validate a Bearer token from the Authorization header.

    Returns the caller's ``Profile``.  Raises 401 if the token is missing,
    expired, or has no profile behind it.
    """
    from truelocal.services import auth_service

    try:
        profile = await auth_service.get_current_profile(db, credentials.credentials)
    except ValueError as exc:
        raise _unauthorized(str(exc))
    return profile


# Convenience type aliases for route signatures
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
CurrentUser = Annotated[Profile, Depends(get_current_user)]
