"""
Listing Service
===============

Business logic for provider listings (the ``services`` table): creation with
photo upload, provider-scoped and public queries, status changes, deletion,
view counting and the provider's listing statistics.

Status changes are deliberately unguarded: any of ``active``, ``paused`` and
``inactive`` may follow any other.  Ownership is checked by the HTTP layer.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from truelocal.core.config import settings
from truelocal.models import PricingType, Review, Service, ServiceStatus
from truelocal.realtime.changeFeed import ChangeType, serialize_row, stage_change
from truelocal.services import storageService
from truelocal.services.storageService import StorageError, UploadedFile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ListingError(Exception):
    """Base exception for listing service errors."""
    pass


class ListingNotFoundError(ListingError):
    """Raised when the listing does not exist."""
    pass


class InvalidListingError(ListingError, ValueError):
    """Raised when listing data fails validation."""
    pass


# Fields a caller may supply on creation
_CREATE_FIELDS: frozenset[str] = frozenset({
    "title",
    "description",
    "category",
    "specific_service",
    "pricing_type",
    "pricing_amount",
    "currency",
    "location_address",
    "location_city",
    "location_state",
    "location_zip",
    "service_radius",
    "availability_days",
    "availability_start",
    "availability_end",
    "features",
    "requirements",
})

_REQUIRED_FIELDS: tuple[str, ...] = (
    "title",
    "category",
    "description",
    "location_city",
    "location_state",
)


# ---------------------------------------------------------------------------
# Data transfer objects
# ---------------------------------------------------------------------------

@dataclass
class ListingFilters:
    status: Optional[ServiceStatus] = None
    category: Optional[str] = None
    search: Optional[str] = None


@dataclass
class ListingStats:
    total: int = 0
    active: int = 0
    paused: int = 0
    inactive: int = 0
    total_views: int = 0
    total_rating: float = 0.0
    total_reviews: int = 0
    average_rating: float = 0.0


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def fold_listing_stats(rows: Iterable[Any]) -> ListingStats:
    """Fold listing rows into per-status counts, views and a weighted rating.

    Each row needs ``status``, ``views``, ``rating`` and ``review_count``.
    The average is ``sum(rating * review_count) / sum(review_count)`` over
    rated listings, and 0 when nothing has been reviewed.
    """
    stats = ListingStats()
    for row in rows:
        stats.total += 1
        stats.total_views += row.views or 0

        status = ServiceStatus(row.status)
        if status is ServiceStatus.ACTIVE:
            stats.active += 1
        elif status is ServiceStatus.PAUSED:
            stats.paused += 1
        else:
            stats.inactive += 1

        rating = float(row.rating or 0)
        if rating and (row.review_count or 0) > 0:
            stats.total_rating += rating * row.review_count
            stats.total_reviews += row.review_count

    if stats.total_reviews > 0:
        stats.average_rating = stats.total_rating / stats.total_reviews
    return stats


def matches_search(listing: Any, search: Optional[str]) -> bool:
    """Case-insensitive substring match over the listing's text fields."""
    if not search:
        return True
    needle = search.lower()
    return any(
        needle in (value or "").lower()
        for value in (
            listing.title,
            listing.description,
            listing.category,
            listing.specific_service,
        )
    )


def _validate_listing_data(data: dict[str, Any]) -> dict[str, Any]:
    unknown = set(data) - _CREATE_FIELDS
    if unknown:
        raise InvalidListingError(f"Unknown listing fields: {', '.join(sorted(unknown))}")

    missing = [f for f in _REQUIRED_FIELDS if not str(data.get(f) or "").strip()]
    if missing:
        raise InvalidListingError(f"Missing required fields: {', '.join(missing)}")

    try:
        pricing_type = PricingType(data.get("pricing_type"))
    except ValueError as exc:
        raise InvalidListingError(
            f"pricing_type must be one of: {', '.join(p.value for p in PricingType)}"
        ) from exc

    cleaned = dict(data)
    cleaned["pricing_type"] = pricing_type
    if pricing_type is PricingType.CUSTOM:
        cleaned["pricing_amount"] = None
    elif cleaned.get("pricing_amount") is not None:
        amount = Decimal(str(cleaned["pricing_amount"]))
        if amount < 0:
            raise InvalidListingError("pricing_amount cannot be negative")
        cleaned["pricing_amount"] = amount
    return cleaned


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_listing_by_id(
    db: AsyncSession,
    listing_id: uuid.UUID,
) -> Optional[Service]:
    stmt = (
        select(Service)
        .options(selectinload(Service.provider))
        .where(Service.id == listing_id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _require_listing(db: AsyncSession, listing_id: uuid.UUID) -> Service:
    listing = await get_listing_by_id(db, listing_id)
    if listing is None:
        raise ListingNotFoundError(f"Listing '{listing_id}' not found")
    return listing


async def get_user_listings(
    db: AsyncSession,
    provider_id: uuid.UUID,
    filters: Optional[ListingFilters] = None,
) -> List[Service]:
    """Return the provider's listings, newest first.

    Status and category are filtered in SQL; the free-text search runs over
    the fetched rows.
    """
    filters = filters or ListingFilters()
    stmt = (
        select(Service)
        .options(selectinload(Service.provider))
        .where(Service.provider_id == provider_id)
    )
    if filters.status is not None:
        stmt = stmt.where(Service.status == ServiceStatus(filters.status))
    if filters.category:
        stmt = stmt.where(Service.category == filters.category)
    stmt = stmt.order_by(Service.created_at.desc())

    result = await db.execute(stmt)
    listings = list(result.scalars().all())
    return [s for s in listings if matches_search(s, filters.search)]


async def search_listings(
    db: AsyncSession,
    *,
    category: Optional[str] = None,
    search: Optional[str] = None,
    location: Optional[str] = None,
    verified_only: bool = False,
    limit: Optional[int] = None,
) -> List[Service]:
    """Public browse: the newest active listings with their providers.

    The window is capped at ``public_listing_limit`` rows before the
    category, verification, text and location filters are applied.
    """
    cap = min(limit or settings.public_listing_limit, settings.public_listing_limit)
    stmt = (
        select(Service)
        .options(selectinload(Service.provider))
        .where(Service.status == ServiceStatus.ACTIVE)
        .order_by(Service.created_at.desc())
        .limit(cap)
    )
    result = await db.execute(stmt)

    needle = search.lower() if search else None
    place = location.lower() if location else None
    matched: List[Service] = []
    for listing in result.scalars().all():
        if category and listing.category != category:
            continue
        if verified_only and not (listing.provider and listing.provider.verified):
            continue
        if needle and needle not in listing.title.lower() and needle not in listing.description.lower():
            continue
        if place and place not in listing.location_city.lower() and place not in listing.location_state.lower():
            continue
        matched.append(listing)
    return matched


async def get_listing_reviews(
    db: AsyncSession,
    listing_id: uuid.UUID,
    *,
    limit: int = 10,
) -> List[Review]:
    stmt = (
        select(Review)
        .options(selectinload(Review.customer_profile))
        .where(Review.service_id == listing_id)
        .order_by(Review.created_at.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_listing_stats(db: AsyncSession, provider_id: uuid.UUID) -> ListingStats:
    stmt = select(
        Service.status,
        Service.views,
        Service.rating,
        Service.review_count,
    ).where(Service.provider_id == provider_id)
    result = await db.execute(stmt)
    return fold_listing_stats(result.all())


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def _upload_images(
    listing: Service,
    images: Sequence[UploadedFile],
    *,
    start_index: int = 0,
) -> List[str]:
    """Upload photos one by one; a failed upload is logged and skipped."""
    urls: List[str] = []
    for offset, image in enumerate(images):
        index = start_index + offset
        try:
            url = await storageService.upload_service_image(
                listing.provider_id,
                listing.id,
                index,
                image.filename,
                image.content,
                image.content_type,
            )
        except StorageError:
            logger.exception(
                "Skipping image %d for listing=%s: upload failed", index, listing.id,
            )
            continue
        urls.append(url)
    return urls


async def create_listing(
    db: AsyncSession,
    provider_id: uuid.UUID,
    data: dict[str, Any],
    images: Sequence[UploadedFile] = (),
) -> Service:
    """Create an active listing, then attach whichever photos upload.

    At most ``max_listing_images`` photos are considered.  The listing is
    kept even if every upload fails.
    """
    cleaned = _validate_listing_data(data)
    listing = Service(provider_id=provider_id, status=ServiceStatus.ACTIVE, **cleaned)
    db.add(listing)
    await db.flush()

    urls = await _upload_images(listing, list(images)[: settings.max_listing_images])
    if urls:
        listing.images = urls
        await db.flush()

    await db.refresh(listing, attribute_names=["provider"])
    stage_change(db, "services", ChangeType.INSERT, serialize_row(listing))
    logger.info(
        "Listing created: id=%s provider=%s images=%d/%d",
        listing.id, provider_id, len(urls), min(len(images), settings.max_listing_images),
    )
    return listing


async def add_listing_images(
    db: AsyncSession,
    listing_id: uuid.UUID,
    images: Sequence[UploadedFile],
) -> Service:
    """Append photos to an existing listing up to the per-listing maximum."""
    listing = await _require_listing(db, listing_id)
    existing = list(listing.images or [])
    room = settings.max_listing_images - len(existing)
    if room <= 0:
        raise InvalidListingError(
            f"A listing can have at most {settings.max_listing_images} images"
        )

    old = serialize_row(listing)
    urls = await _upload_images(listing, list(images)[:room], start_index=len(existing))
    if urls:
        listing.images = existing + urls
        await db.flush()
        stage_change(db, "services", ChangeType.UPDATE, serialize_row(listing), old)
    logger.info("Added %d images to listing=%s", len(urls), listing_id)
    return listing


async def update_listing_status(
    db: AsyncSession,
    listing_id: uuid.UUID,
    status: ServiceStatus | str,
) -> Service:
    """Set the listing's status.  Only ``status`` and ``updated_at`` change."""
    try:
        new_status = ServiceStatus(status)
    except ValueError as exc:
        raise InvalidListingError(f"Invalid listing status '{status}'") from exc

    listing = await _require_listing(db, listing_id)
    old = serialize_row(listing)
    listing.status = new_status
    await db.flush()

    stage_change(db, "services", ChangeType.UPDATE, serialize_row(listing), old)
    logger.info(
        "Listing %s status: %s -> %s", listing_id, old["status"], new_status.value,
    )
    return listing


async def delete_listing(db: AsyncSession, listing_id: uuid.UUID) -> None:
    """Hard-delete a listing, then try to remove its photos.

    A storage failure is logged; the row stays deleted.
    """
    listing = await _require_listing(db, listing_id)
    provider_id = listing.provider_id
    record = serialize_row(listing)

    await db.delete(listing)
    await db.flush()
    stage_change(db, "services", ChangeType.DELETE, record)
    logger.info("Listing deleted: id=%s provider=%s", listing_id, provider_id)

    try:
        await storageService.delete_service_images(provider_id, listing_id)
    except StorageError:
        logger.warning("Could not clean up images for deleted listing=%s", listing_id)


async def increment_listing_views(db: AsyncSession, listing_id: uuid.UUID) -> int:
    """Bump the view counter in one statement and return the new value."""
    stmt = (
        update(Service)
        .where(Service.id == listing_id)
        .values(views=Service.views + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise ListingNotFoundError(f"Listing '{listing_id}' not found")

    refreshed = await db.execute(
        select(Service)
        .where(Service.id == listing_id)
        .execution_options(populate_existing=True)
    )
    listing = refreshed.scalar_one()
    stage_change(db, "services", ChangeType.UPDATE, serialize_row(listing))
    return listing.views
