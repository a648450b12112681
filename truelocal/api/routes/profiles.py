"""
Profile API Routes
==================

Endpoints for the caller's own profile.

Routes:
  POST   /api/v1/profiles                  -- Create the profile after signup
  GET    /api/v1/profiles/me               -- Current profile
  PATCH  /api/v1/profiles/me               -- Edit profile fields
  PUT    /api/v1/profiles/me/user-type     -- Switch customer/provider
  POST   /api/v1/profiles/me/avatar        -- Upload a new avatar
  GET    /api/v1/profiles/me/unread-count  -- Navbar unread badge

All endpoints require a valid Bearer token from the auth provider.
"""

from __future__ import annotations

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from truelocal.api.deps import CurrentUser, CurrentUserId, DBSession
from truelocal.api.schemas.profile import (
    ProfileCreate,
    ProfileOut,
    ProfileUpdate,
    UnreadCountResponse,
    UserTypeSwitchRequest,
    UserTypeSwitchResponse,
)
from truelocal.services import profileService, storageService

router = APIRouter(prefix="/profiles", tags=["Profiles"])


# ---------------------------------------------------------------------------
# POST /api/v1/profiles -- Signup record
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ProfileOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create the caller's profile",
    description=(
        "Creates the profile row for a freshly registered account. The id is "
        "taken from the token subject. Fails with 409 if it already exists."
    ),
)
async def create_profile(
    body: ProfileCreate,
    db: DBSession,
    user_id: CurrentUserId,
) -> ProfileOut:
    try:
        profile = await profileService.create_profile(
            db,
            user_id=user_id,
            email=body.email,
            full_name=body.full_name,
            user_type=body.user_type,
            phone=body.phone,
        )
    except profileService.ProfileConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except profileService.InvalidProfileError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return ProfileOut.model_validate(profile)


# ---------------------------------------------------------------------------
# GET / PATCH /api/v1/profiles/me
# ---------------------------------------------------------------------------

@router.get(
    "/me",
    response_model=ProfileOut,
    summary="Get the caller's profile",
)
async def get_my_profile(current_user: CurrentUser) -> ProfileOut:
    return ProfileOut.model_validate(current_user)


@router.patch(
    "/me",
    response_model=ProfileOut,
    summary="Update the caller's profile",
    description="Writes only the fields present in the request body.",
)
async def update_my_profile(
    body: ProfileUpdate,
    db: DBSession,
    current_user: CurrentUser,
) -> ProfileOut:
    fields = body.model_dump(exclude_unset=True)
    try:
        profile = await profileService.update_profile(db, current_user.id, **fields)
    except profileService.ProfileConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except profileService.InvalidProfileError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return ProfileOut.model_validate(profile)


# ---------------------------------------------------------------------------
# PUT /api/v1/profiles/me/user-type
# ---------------------------------------------------------------------------

@router.put(
    "/me/user-type",
    response_model=UserTypeSwitchResponse,
    summary="Switch between customer and provider",
    description=(
        "Changes the account type. ``changed`` tells the client whether to "
        "show the account-type-switched notice."
    ),
)
async def switch_user_type(
    body: UserTypeSwitchRequest,
    db: DBSession,
    current_user: CurrentUser,
) -> UserTypeSwitchResponse:
    profile, changed = await profileService.switch_user_type(
        db, current_user.id, body.user_type,
    )
    return UserTypeSwitchResponse(profile=ProfileOut.model_validate(profile), changed=changed)


# ---------------------------------------------------------------------------
# POST /api/v1/profiles/me/avatar
# ---------------------------------------------------------------------------

@router.post(
    "/me/avatar",
    response_model=ProfileOut,
    summary="Upload a new avatar",
    description="Stores the image as the caller's avatar, replacing any previous one.",
)
async def upload_my_avatar(
    db: DBSession,
    current_user: CurrentUser,
    file: UploadFile = File(..., description="Avatar image"),
) -> ProfileOut:
    content = await file.read()
    try:
        profile = await profileService.upload_avatar(
            db,
            current_user.id,
            filename=file.filename or "",
            content=content,
            content_type=file.content_type or "application/octet-stream",
        )
    except storageService.InvalidFileError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except storageService.StorageError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return ProfileOut.model_validate(profile)


# ---------------------------------------------------------------------------
# GET /api/v1/profiles/me/unread-count
# ---------------------------------------------------------------------------

@router.get(
    "/me/unread-count",
    response_model=UnreadCountResponse,
    summary="Total unread messages",
    description="Sum of the caller's unread counters across all conversations, in their current role.",
)
async def get_unread_count(
    db: DBSession,
    current_user: CurrentUser,
) -> UnreadCountResponse:
    count = await profileService.get_total_unread_count(
        db, current_user.id, current_user.user_type,
    )
    return UnreadCountResponse(unread_count=count)
