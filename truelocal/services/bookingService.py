"""
Booking Service
===============

Business logic for booking requests: creation, role-scoped queries, status
changes, cancellation and the per-user booking statistics.

Rules:
  - New bookings always start ``pending``.
  - The customer's contact fields are a snapshot taken at request time.
  - Status changes are not guarded by a state machine; a final amount is
    only recorded when the booking is marked ``completed``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from truelocal.models import (
    Booking,
    BookingStatus,
    BookingUrgency,
    Profile,
    Service,
    UserType,
    role_column,
)
from truelocal.realtime.changeFeed import ChangeType, serialize_row, stage_change

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class BookingError(Exception):
    """Base exception for booking service errors."""
    pass


class BookingNotFoundError(BookingError):
    """Raised when the booking does not exist."""
    pass


class BookingReferenceError(BookingError):
    """Raised when the service, customer or provider of a booking is missing."""
    pass


class InvalidBookingError(BookingError, ValueError):
    """Raised when booking data fails validation."""
    pass


_CONTACT_FIELDS: tuple[str, ...] = (
    "customer_name",
    "customer_phone",
    "customer_email",
    "service_address",
)


# ---------------------------------------------------------------------------
# Data transfer objects
# ---------------------------------------------------------------------------

@dataclass
class BookingFilters:
    status: Optional[BookingStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    service_id: Optional[uuid.UUID] = None
    search: Optional[str] = None


@dataclass
class BookingStats:
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0
    this_week: int = 0
    this_month: int = 0
    total_revenue: float = 0.0
    weekly_revenue: float = 0.0
    monthly_revenue: float = 0.0


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_week(now: datetime) -> datetime:
    """Midnight of the most recent Sunday (UTC)."""
    now = as_utc(now)
    days_since_sunday = (now.weekday() + 1) % 7
    sunday = now - timedelta(days=days_since_sunday)
    return sunday.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: datetime) -> datetime:
    return as_utc(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def fold_booking_stats(rows: Iterable[Any], now: datetime) -> BookingStats:
    """Fold booking rows into per-status counts and revenue windows.

    Each row needs ``status``, ``total_amount`` and ``created_at``.  Revenue
    sums every recorded ``total_amount`` regardless of status; the weekly and
    monthly figures only count rows created on or after the period start.
    """
    week_start = start_of_week(now)
    month_start = start_of_month(now)
    stats = BookingStats()

    for row in rows:
        amount = float(row.total_amount or 0)
        created = as_utc(row.created_at)

        stats.total += 1
        stats.total_revenue += amount

        status = BookingStatus(row.status)
        if status is BookingStatus.PENDING:
            stats.pending += 1
        elif status is BookingStatus.CONFIRMED:
            stats.confirmed += 1
        elif status is BookingStatus.COMPLETED:
            stats.completed += 1
        else:
            stats.cancelled += 1

        if created >= week_start:
            stats.this_week += 1
            stats.weekly_revenue += amount
        if created >= month_start:
            stats.this_month += 1
            stats.monthly_revenue += amount

    return stats


def matches_search(booking: Booking, search: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.lower()
    title = booking.service.title if booking.service is not None else ""
    return any(
        needle in (value or "").lower()
        for value in (
            title,
            booking.customer_name,
            booking.service_address,
            booking.service_details,
        )
    )


def _booking_query():
    return select(Booking).options(
        selectinload(Booking.service),
        selectinload(Booking.customer_profile),
        selectinload(Booking.provider_profile),
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_booking_by_id(
    db: AsyncSession,
    booking_id: uuid.UUID,
) -> Optional[Booking]:
    result = await db.execute(_booking_query().where(Booking.id == booking_id))
    return result.scalar_one_or_none()


async def _require_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    booking = await get_booking_by_id(db, booking_id)
    if booking is None:
        raise BookingNotFoundError(f"Booking '{booking_id}' not found")
    return booking


async def get_bookings(
    db: AsyncSession,
    user_id: uuid.UUID,
    user_type: UserType | str,
    filters: Optional[BookingFilters] = None,
) -> List[Booking]:
    """Return the caller's bookings (as customer or provider), newest first."""
    filters = filters or BookingFilters()
    owner = getattr(Booking, role_column(user_type))

    stmt = _booking_query().where(owner == user_id)
    if filters.status is not None:
        stmt = stmt.where(Booking.status == BookingStatus(filters.status))
    if filters.date_from is not None:
        stmt = stmt.where(Booking.booking_date >= filters.date_from)
    if filters.date_to is not None:
        stmt = stmt.where(Booking.booking_date <= filters.date_to)
    if filters.service_id is not None:
        stmt = stmt.where(Booking.service_id == filters.service_id)
    stmt = stmt.order_by(Booking.created_at.desc())

    result = await db.execute(stmt)
    return [b for b in result.scalars().all() if matches_search(b, filters.search)]


async def get_booking_stats(
    db: AsyncSession,
    user_id: uuid.UUID,
    user_type: UserType | str,
    *,
    now: Optional[datetime] = None,
) -> BookingStats:
    owner = getattr(Booking, role_column(user_type))
    stmt = select(
        Booking.status,
        Booking.total_amount,
        Booking.created_at,
    ).where(owner == user_id)
    result = await db.execute(stmt)
    return fold_booking_stats(result.all(), now or datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_booking(db: AsyncSession, data: dict[str, Any]) -> Booking:
    """Insert a ``pending`` booking after checking its references exist."""
    missing = [f for f in _CONTACT_FIELDS if not str(data.get(f) or "").strip()]
    if missing:
        raise InvalidBookingError(f"Missing required fields: {', '.join(missing)}")
    if data.get("booking_date") is None or not data.get("booking_time"):
        raise InvalidBookingError("booking_date and booking_time are required")

    service = await db.get(Service, data["service_id"])
    if service is None:
        raise BookingReferenceError(f"Service '{data['service_id']}' not found")
    if service.provider_id != data["provider_id"]:
        raise BookingReferenceError(
            f"Service '{service.id}' is not offered by provider '{data['provider_id']}'"
        )
    for column in ("customer_id", "provider_id"):
        if await db.get(Profile, data[column]) is None:
            raise BookingReferenceError(f"Profile '{data[column]}' not found")

    try:
        urgency = BookingUrgency(data.get("urgency") or BookingUrgency.NORMAL)
    except ValueError as exc:
        raise InvalidBookingError(f"Invalid urgency '{data.get('urgency')}'") from exc

    booking = Booking(
        customer_id=data["customer_id"],
        provider_id=data["provider_id"],
        service_id=data["service_id"],
        customer_name=data["customer_name"],
        customer_phone=data["customer_phone"],
        customer_email=data["customer_email"],
        service_address=data["service_address"],
        service_details=data.get("service_details"),
        booking_date=data["booking_date"],
        booking_time=data["booking_time"],
        urgency=urgency,
        status=BookingStatus.PENDING,
    )
    db.add(booking)
    await db.flush()

    stage_change(db, "bookings", ChangeType.INSERT, serialize_row(booking))
    logger.info(
        "Booking created: id=%s service=%s customer=%s provider=%s",
        booking.id, booking.service_id, booking.customer_id, booking.provider_id,
    )
    return await _require_booking(db, booking.id)


async def update_booking_status(
    db: AsyncSession,
    booking_id: uuid.UUID,
    status: BookingStatus | str,
    total_amount: Optional[Decimal | float] = None,
) -> Booking:
    try:
        new_status = BookingStatus(status)
    except ValueError as exc:
        raise InvalidBookingError(f"Invalid booking status '{status}'") from exc
    if total_amount is not None and Decimal(str(total_amount)) < 0:
        raise InvalidBookingError("total_amount cannot be negative")

    booking = await _require_booking(db, booking_id)
    old = serialize_row(booking)

    booking.status = new_status
    if new_status is BookingStatus.COMPLETED and total_amount is not None:
        booking.total_amount = Decimal(str(total_amount))
    await db.flush()

    stage_change(db, "bookings", ChangeType.UPDATE, serialize_row(booking), old)
    logger.info(
        "Booking %s status: %s -> %s", booking_id, old["status"], new_status.value,
    )
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    reason: Optional[str] = None,
) -> Booking:
    """Cancel a booking, recording the reason in ``service_details``."""
    booking = await _require_booking(db, booking_id)
    old = serialize_row(booking)

    reason = (reason or "").strip()
    booking.status = BookingStatus.CANCELLED
    booking.service_details = f"Cancelled: {reason}" if reason else "Cancelled by user"
    await db.flush()

    stage_change(db, "bookings", ChangeType.UPDATE, serialize_row(booking), old)
    logger.info("Booking %s cancelled", booking_id)
    return booking
