"""
Listing API Routes
==================

Endpoints for provider listings and the public browse pages.

Routes:
  GET    /api/v1/listings                  -- Public browse (active only)
  POST   /api/v1/listings                  -- Create a listing (provider)
  GET    /api/v1/listings/mine             -- Caller's listings with filters
  GET    /api/v1/listings/mine/stats       -- Caller's listing statistics
  GET    /api/v1/listings/{id}             -- Listing detail
  DELETE /api/v1/listings/{id}             -- Delete a listing (owner)
  PATCH  /api/v1/listings/{id}/status      -- Change status (owner)
  POST   /api/v1/listings/{id}/views       -- Count a detail-page view
  GET    /api/v1/listings/{id}/reviews     -- Latest reviews
  POST   /api/v1/listings/{id}/images      -- Upload photos (owner)

Browse, detail, view counting and reviews are public; everything else
requires a Bearer token.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status

from truelocal.api.deps import CurrentUser, DBSession
from truelocal.api.schemas.listing import (
    ListingCreate,
    ListingOut,
    ListingStatsOut,
    ListingStatusUpdate,
    ReviewOut,
    ViewCountOut,
)
from truelocal.models import Profile, Service, ServiceStatus, UserType
from truelocal.services import listingService
from truelocal.services.storageService import UploadedFile

router = APIRouter(prefix="/listings", tags=["Listings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _get_owned_listing(db, listing_id: uuid.UUID, user: Profile) -> Service:
    listing = await listingService.get_listing_by_id(db, listing_id)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing '{listing_id}' not found",
        )
    if listing.provider_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not own this listing",
        )
    return listing


# ---------------------------------------------------------------------------
# GET /api/v1/listings -- Public browse
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=List[ListingOut],
    summary="Browse active listings",
    description=(
        "Returns the newest active listings with their providers, filtered "
        "by category, verified providers, free text and city/state."
    ),
)
async def browse_listings(
    db: DBSession,
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None, description="Matches title or description"),
    location: Optional[str] = Query(default=None, description="Matches city or state"),
    verified_only: bool = Query(default=False, alias="verifiedOnly"),
    limit: Optional[int] = Query(default=None, ge=1, le=50),
) -> List[ListingOut]:
    listings = await listingService.search_listings(
        db,
        category=category,
        search=search,
        location=location,
        verified_only=verified_only,
        limit=limit,
    )
    return [ListingOut.model_validate(s) for s in listings]


# ---------------------------------------------------------------------------
# POST /api/v1/listings -- Create
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ListingOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a listing",
    description="Publishes a new active listing owned by the calling provider.",
)
async def create_listing(
    body: ListingCreate,
    db: DBSession,
    current_user: CurrentUser,
) -> ListingOut:
    if current_user.user_type != UserType.PROVIDER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only providers can create listings",
        )
    try:
        listing = await listingService.create_listing(db, current_user.id, body.model_dump())
    except listingService.InvalidListingError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return ListingOut.model_validate(listing)


# ---------------------------------------------------------------------------
# GET /api/v1/listings/mine, /mine/stats
# ---------------------------------------------------------------------------

@router.get(
    "/mine",
    response_model=List[ListingOut],
    summary="List the caller's listings",
)
async def get_my_listings(
    db: DBSession,
    current_user: CurrentUser,
    status_filter: Optional[ServiceStatus] = Query(default=None, alias="status"),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
) -> List[ListingOut]:
    listings = await listingService.get_user_listings(
        db,
        current_user.id,
        listingService.ListingFilters(status=status_filter, category=category, search=search),
    )
    return [ListingOut.model_validate(s) for s in listings]


@router.get(
    "/mine/stats",
    response_model=ListingStatsOut,
    summary="Listing statistics",
    description="Counts per status, total views and the review-weighted average rating.",
)
async def get_my_listing_stats(
    db: DBSession,
    current_user: CurrentUser,
) -> ListingStatsOut:
    stats = await listingService.get_listing_stats(db, current_user.id)
    return ListingStatsOut.model_validate(stats)


# ---------------------------------------------------------------------------
# GET / DELETE /api/v1/listings/{listing_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{listing_id}",
    response_model=ListingOut,
    summary="Get a listing",
)
async def get_listing(listing_id: uuid.UUID, db: DBSession) -> ListingOut:
    listing = await listingService.get_listing_by_id(db, listing_id)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing '{listing_id}' not found",
        )
    return ListingOut.model_validate(listing)


@router.delete(
    "/{listing_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a listing",
    description="Removes the listing permanently. Stored photos are cleaned up best-effort.",
)
async def delete_listing(
    listing_id: uuid.UUID,
    db: DBSession,
    current_user: CurrentUser,
) -> None:
    await _get_owned_listing(db, listing_id, current_user)
    await listingService.delete_listing(db, listing_id)


# ---------------------------------------------------------------------------
# PATCH /api/v1/listings/{listing_id}/status
# ---------------------------------------------------------------------------

@router.patch(
    "/{listing_id}/status",
    response_model=ListingOut,
    summary="Change a listing's status",
    description="Any of active, paused and inactive may follow any other.",
)
async def update_listing_status(
    listing_id: uuid.UUID,
    body: ListingStatusUpdate,
    db: DBSession,
    current_user: CurrentUser,
) -> ListingOut:
    await _get_owned_listing(db, listing_id, current_user)
    listing = await listingService.update_listing_status(db, listing_id, body.status)
    return ListingOut.model_validate(listing)


# ---------------------------------------------------------------------------
# POST /api/v1/listings/{listing_id}/views
# ---------------------------------------------------------------------------

@router.post(
    "/{listing_id}/views",
    response_model=ViewCountOut,
    summary="Record a listing view",
)
async def record_listing_view(listing_id: uuid.UUID, db: DBSession) -> ViewCountOut:
    try:
        views = await listingService.increment_listing_views(db, listing_id)
    except listingService.ListingNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return ViewCountOut(views=views)


# ---------------------------------------------------------------------------
# GET /api/v1/listings/{listing_id}/reviews
# ---------------------------------------------------------------------------

@router.get(
    "/{listing_id}/reviews",
    response_model=List[ReviewOut],
    summary="Latest reviews for a listing",
)
async def get_listing_reviews(
    listing_id: uuid.UUID,
    db: DBSession,
    limit: int = Query(default=10, ge=1, le=50),
) -> List[ReviewOut]:
    reviews = await listingService.get_listing_reviews(db, listing_id, limit=limit)
    return [ReviewOut.model_validate(r) for r in reviews]


# ---------------------------------------------------------------------------
# POST /api/v1/listings/{listing_id}/images
# ---------------------------------------------------------------------------

@router.post(
    "/{listing_id}/images",
    response_model=ListingOut,
    summary="Upload listing photos",
    description=(
        "Uploads up to the per-listing maximum of photos. Photos that fail "
        "to upload are skipped; the rest are attached to the listing."
    ),
)
async def upload_listing_images(
    listing_id: uuid.UUID,
    db: DBSession,
    current_user: CurrentUser,
    files: List[UploadFile] = File(..., description="Image files"),
) -> ListingOut:
    await _get_owned_listing(db, listing_id, current_user)
    images = [
        UploadedFile(
            filename=f.filename or "",
            content=await f.read(),
            content_type=f.content_type or "application/octet-stream",
        )
        for f in files
    ]
    try:
        listing = await listingService.add_listing_images(db, listing_id, images)
    except listingService.InvalidListingError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return ListingOut.model_validate(listing)
