"""
Analytics Service
=================

Derives the account dashboard figures for a customer or a provider from
the bookings, services, reviews and conversations tables.

Every call runs a fresh set of queries, one after another on the request
session, and folds the rows in memory.  Nothing is cached.  The folds are
plain functions so they can be tested without a database.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from truelocal.models import (
    Booking,
    BookingStatus,
    Conversation,
    Review,
    Service,
    ServiceStatus,
    UserType,
    role_column,
)
from truelocal.services.bookingService import as_utc, start_of_month

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TREND_DAYS: int = 30
TOP_SERVICES_LIMIT: int = 5
RECENT_BOOKINGS_LIMIT: int = 5
RECENT_REVIEWS_LIMIT: int = 3
RECENT_ACTIVITY_LIMIT: int = 10
RESPONSE_WINDOW: timedelta = timedelta(hours=24)
UNKNOWN_SERVICE: str = "Unknown Service"


# ---------------------------------------------------------------------------
# Data transfer objects
# ---------------------------------------------------------------------------

@dataclass
class TopService:
    service_id: uuid.UUID
    title: str
    booking_count: int = 0
    revenue: float = 0.0


@dataclass
class ActivityItem:
    type: str
    title: str
    description: str
    timestamp: datetime
    status: Optional[str] = None


@dataclass
class TrendPoint:
    date: date
    bookings: int = 0
    revenue: float = 0.0


@dataclass
class RatingBucket:
    rating: int
    count: int = 0


@dataclass
class DashboardStats:
    total_bookings: int = 0
    total_revenue: float = 0.0
    average_rating: float = 0.0
    response_rate: int = 100
    completed_jobs: int = 0
    pending_bookings: int = 0
    monthly_revenue: float = 0.0
    monthly_bookings: int = 0
    total_services: int = 0
    active_services: int = 0
    top_services: List[TopService] = field(default_factory=list)
    recent_activity: List[ActivityItem] = field(default_factory=list)
    booking_trends: List[TrendPoint] = field(default_factory=list)
    rating_distribution: List[RatingBucket] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure folds
# ---------------------------------------------------------------------------

def build_booking_trends(rows: Iterable[Any], today: date) -> List[TrendPoint]:
    """Daily booking count and revenue for the 30 days ending ``today``.

    Always returns exactly 30 points, oldest first, with zeroes for days
    without bookings.  Rows outside the window are ignored.
    """
    points: "OrderedDict[date, TrendPoint]" = OrderedDict()
    for offset in range(TREND_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        points[day] = TrendPoint(date=day)

    for row in rows:
        point = points.get(as_utc(row.created_at).date())
        if point is None:
            continue
        point.bookings += 1
        point.revenue += float(row.total_amount or 0)

    return list(points.values())


def rank_top_services(rows: Iterable[Any], limit: int = TOP_SERVICES_LIMIT) -> List[TopService]:
    """Group completed bookings by service and keep the most booked.

    Each row needs ``service_id``, ``total_amount`` and ``title`` (may be
    None).  Bookings whose listing was deleted are left out.  Ties keep
    first-seen order.
    """
    grouped: "OrderedDict[uuid.UUID, TopService]" = OrderedDict()
    for row in rows:
        if row.service_id is None:
            continue
        entry = grouped.get(row.service_id)
        if entry is None:
            entry = TopService(service_id=row.service_id, title=row.title or UNKNOWN_SERVICE)
            grouped[row.service_id] = entry
        entry.booking_count += 1
        entry.revenue += float(row.total_amount or 0)

    ranked = sorted(grouped.values(), key=lambda s: s.booking_count, reverse=True)
    return ranked[:limit]


def merge_recent_activity(
    bookings: Sequence[Any],
    reviews: Sequence[Any],
    user_type: UserType | str,
    limit: int = RECENT_ACTIVITY_LIMIT,
) -> List[ActivityItem]:
    """Interleave recent bookings and reviews into one feed, newest first."""
    is_customer = UserType(user_type) is UserType.CUSTOMER
    items: List[ActivityItem] = []

    for booking in bookings:
        other = booking.provider_profile if is_customer else booking.customer_profile
        other_name = (other.full_name if other is not None else None) or "Unknown"
        title = booking.service.title if booking.service is not None else UNKNOWN_SERVICE
        status = BookingStatus(booking.status).value
        items.append(ActivityItem(
            type="booking",
            title=f"Booking {status}",
            description=f"{title} with {other_name}",
            timestamp=as_utc(booking.created_at),
            status=status,
        ))

    for review in reviews:
        title = review.service.title if review.service is not None else UNKNOWN_SERVICE
        items.append(ActivityItem(
            type="review",
            title="Review left" if is_customer else "Review received",
            description=f"{review.rating} stars for {title}",
            timestamp=as_utc(review.created_at),
        ))

    items.sort(key=lambda item: item.timestamp, reverse=True)
    return items[:limit]


def rating_histogram(ratings: Iterable[int]) -> List[RatingBucket]:
    buckets = {value: RatingBucket(rating=value) for value in range(1, 6)}
    for rating in ratings:
        bucket = buckets.get(int(rating))
        if bucket is not None:
            bucket.count += 1
    return list(buckets.values())


def average_rating(ratings: Sequence[int]) -> float:
    """Mean rating rounded to one decimal; 0 when there are no reviews."""
    if not ratings:
        return 0.0
    return round(sum(ratings) / len(ratings), 1)


def response_rate(rows: Iterable[Any]) -> int:
    """Percentage of conversations whose latest message came within 24h.

    Conversations with no message count against the rate.  With no
    conversations at all the rate is 100.
    """
    total = responded = 0
    for row in rows:
        total += 1
        if row.last_message_at is None:
            continue
        if as_utc(row.last_message_at) - as_utc(row.created_at) <= RESPONSE_WINDOW:
            responded += 1
    if total == 0:
        return 100
    return round(responded / total * 100)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

async def get_dashboard_stats(
    db: AsyncSession,
    user_id: uuid.UUID,
    user_type: UserType | str,
    *,
    now: Optional[datetime] = None,
) -> DashboardStats:
    """Compute every dashboard figure for the caller in their current role."""
    role = UserType(user_type)
    now = as_utc(now or datetime.now(timezone.utc))
    column = role_column(role)
    month_start = start_of_month(now)
    stats = DashboardStats()

    # -- Bookings summary and 30-day trend --
    booking_owner = getattr(Booking, column)
    result = await db.execute(
        select(Booking.status, Booking.total_amount, Booking.created_at)
        .where(booking_owner == user_id)
    )
    booking_rows = result.all()
    for row in booking_rows:
        amount = float(row.total_amount or 0)
        stats.total_bookings += 1
        stats.total_revenue += amount
        status = BookingStatus(row.status)
        if status is BookingStatus.COMPLETED:
            stats.completed_jobs += 1
        elif status is BookingStatus.PENDING:
            stats.pending_bookings += 1
        if as_utc(row.created_at) >= month_start:
            stats.monthly_bookings += 1
            stats.monthly_revenue += amount
    stats.booking_trends = build_booking_trends(booking_rows, now.date())

    # -- Listings (providers only) --
    if role is UserType.PROVIDER:
        result = await db.execute(
            select(Service.status).where(Service.provider_id == user_id)
        )
        statuses = [ServiceStatus(s) for s in result.scalars().all()]
        stats.total_services = len(statuses)
        stats.active_services = sum(1 for s in statuses if s is ServiceStatus.ACTIVE)

    # -- Reviews --
    review_owner = getattr(Review, column)
    result = await db.execute(select(Review.rating).where(review_owner == user_id))
    ratings = list(result.scalars().all())
    stats.average_rating = average_rating(ratings)
    stats.rating_distribution = rating_histogram(ratings)

    # -- Responsiveness --
    conversation_owner = getattr(Conversation, column)
    result = await db.execute(
        select(Conversation.created_at, Conversation.last_message_at)
        .where(conversation_owner == user_id)
    )
    stats.response_rate = response_rate(result.all())

    # -- Top services (providers only) --
    if role is UserType.PROVIDER:
        result = await db.execute(
            select(Booking.service_id, Booking.total_amount, Service.title)
            .outerjoin(Service, Service.id == Booking.service_id)
            .where(
                Booking.provider_id == user_id,
                Booking.status == BookingStatus.COMPLETED,
            )
            .order_by(Booking.created_at.asc())
        )
        stats.top_services = rank_top_services(result.all())

    # -- Recent activity --
    result = await db.execute(
        select(Booking)
        .options(
            selectinload(Booking.service),
            selectinload(Booking.customer_profile),
            selectinload(Booking.provider_profile),
        )
        .where(booking_owner == user_id)
        .order_by(Booking.created_at.desc())
        .limit(RECENT_BOOKINGS_LIMIT)
    )
    recent_bookings = list(result.scalars().all())

    result = await db.execute(
        select(Review)
        .options(selectinload(Review.service))
        .where(review_owner == user_id)
        .order_by(Review.created_at.desc())
        .limit(RECENT_REVIEWS_LIMIT)
    )
    recent_reviews = list(result.scalars().all())
    stats.recent_activity = merge_recent_activity(recent_bookings, recent_reviews, role)

    logger.debug(
        "Dashboard computed: user=%s role=%s bookings=%d reviews=%d",
        user_id, role.value, stats.total_bookings, len(ratings),
    )
    return stats
