"""
Booking API Routes
==================

Endpoints for booking requests and their lifecycle.

Routes:
  POST   /api/v1/bookings               -- Request a booking (customer)
  GET    /api/v1/bookings               -- Caller's bookings with filters
  GET    /api/v1/bookings/stats         -- Caller's booking statistics
  GET    /api/v1/bookings/{id}          -- Booking detail (participant)
  PATCH  /api/v1/bookings/{id}/status   -- Change status (participant)
  POST   /api/v1/bookings/{id}/cancel   -- Cancel with a reason (participant)

Bookings are scoped by the caller's current account type: a customer sees
the bookings they made, a provider the bookings made with them.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from truelocal.api.deps import CurrentUser, DBSession
from truelocal.api.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingCreatedResponse,
    BookingOut,
    BookingStatsOut,
    BookingStatusUpdate,
)
from truelocal.models import Booking, BookingStatus, Profile
from truelocal.services import bookingService, conversationService

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def booking_request_message(service_title: str, booking_date: date, booking_time: str) -> str:
    """Text of the chat message that accompanies a new booking request."""
    when = f"{booking_date:%b} {booking_date.day}, {booking_date.year}"
    return f"New booking request for {service_title} on {when} at {booking_time}"


async def _get_participant_booking(db, booking_id: uuid.UUID, user: Profile) -> Booking:
    booking = await bookingService.get_booking_by_id(db, booking_id)
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booking '{booking_id}' not found",
        )
    if user.id not in (booking.customer_id, booking.provider_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a participant in this booking",
        )
    return booking


def _check_customer_cancel(booking: Booking, user: Profile) -> None:
    """The provider may cancel at any time; the customer only while pending."""
    if user.id == booking.provider_id:
        return
    if booking.status is not BookingStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only pending bookings can be cancelled by the customer",
        )


# ---------------------------------------------------------------------------
# POST /api/v1/bookings -- Request a booking
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a booking",
    description=(
        "Creates a pending booking for the calling customer and posts a "
        "booking-request message to the customer/provider conversation, "
        "opening it if this is their first contact."
    ),
)
async def create_booking(
    body: BookingCreate,
    db: DBSession,
    current_user: CurrentUser,
) -> BookingCreatedResponse:
    if body.provider_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="You cannot book your own service",
        )
    data = body.model_dump()
    data["customer_id"] = current_user.id

    try:
        booking = await bookingService.create_booking(db, data)
    except bookingService.BookingReferenceError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except bookingService.InvalidBookingError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    text = booking_request_message(booking.service.title, booking.booking_date, booking.booking_time)
    conversation = await conversationService.find_conversation(
        db, booking.customer_id, booking.provider_id,
    )
    if conversation is None:
        conversation = await conversationService.create_or_get_conversation(
            db,
            booking.customer_id,
            booking.provider_id,
            booking.service_id,
            initial_message=text,
        )
    else:
        await conversationService.send_message(
            db, conversation.id, booking.customer_id, text,
        )

    return BookingCreatedResponse(
        booking=BookingOut.model_validate(booking),
        conversation_id=conversation.id,
    )


# ---------------------------------------------------------------------------
# GET /api/v1/bookings, /stats
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=List[BookingOut],
    summary="List the caller's bookings",
    description=(
        "Newest first. Status, booking-date range and service filters run in "
        "the database; ``search`` matches service title, customer name, "
        "address and details."
    ),
)
async def list_bookings(
    db: DBSession,
    current_user: CurrentUser,
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    date_from: Optional[date] = Query(default=None, alias="dateFrom"),
    date_to: Optional[date] = Query(default=None, alias="dateTo"),
    service_id: Optional[uuid.UUID] = Query(default=None, alias="serviceId"),
    search: Optional[str] = Query(default=None),
) -> List[BookingOut]:
    bookings = await bookingService.get_bookings(
        db,
        current_user.id,
        current_user.user_type,
        bookingService.BookingFilters(
            status=status_filter,
            date_from=date_from,
            date_to=date_to,
            service_id=service_id,
            search=search,
        ),
    )
    return [BookingOut.model_validate(b) for b in bookings]


@router.get(
    "/stats",
    response_model=BookingStatsOut,
    summary="Booking statistics",
    description="Counts per status plus weekly (Sunday-based) and monthly windows.",
)
async def get_booking_stats(
    db: DBSession,
    current_user: CurrentUser,
) -> BookingStatsOut:
    stats = await bookingService.get_booking_stats(db, current_user.id, current_user.user_type)
    return BookingStatsOut.model_validate(stats)


# ---------------------------------------------------------------------------
# GET /api/v1/bookings/{booking_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{booking_id}",
    response_model=BookingOut,
    summary="Get a booking",
)
async def get_booking(
    booking_id: uuid.UUID,
    db: DBSession,
    current_user: CurrentUser,
) -> BookingOut:
    booking = await _get_participant_booking(db, booking_id, current_user)
    return BookingOut.model_validate(booking)


# ---------------------------------------------------------------------------
# PATCH /api/v1/bookings/{booking_id}/status
# ---------------------------------------------------------------------------

@router.patch(
    "/{booking_id}/status",
    response_model=BookingOut,
    summary="Change a booking's status",
    description=(
        "The provider may set any status; the customer may only cancel, "
        "and only while the booking is pending. "
        "``totalAmount`` is recorded only when completing."
    ),
)
async def update_booking_status(
    booking_id: uuid.UUID,
    body: BookingStatusUpdate,
    db: DBSession,
    current_user: CurrentUser,
) -> BookingOut:
    booking = await _get_participant_booking(db, booking_id, current_user)
    if current_user.id != booking.provider_id and body.status is not BookingStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the provider can confirm or complete a booking",
        )
    if body.status is BookingStatus.CANCELLED:
        _check_customer_cancel(booking, current_user)
    booking = await bookingService.update_booking_status(
        db, booking_id, body.status, body.total_amount,
    )
    return BookingOut.model_validate(booking)


# ---------------------------------------------------------------------------
# POST /api/v1/bookings/{booking_id}/cancel
# ---------------------------------------------------------------------------

@router.post(
    "/{booking_id}/cancel",
    response_model=BookingOut,
    summary="Cancel a booking",
    description=(
        "Marks the booking cancelled and records the reason in its details. "
        "A customer can only cancel a pending booking."
    ),
)
async def cancel_booking(
    booking_id: uuid.UUID,
    db: DBSession,
    current_user: CurrentUser,
    body: Optional[BookingCancelRequest] = None,
) -> BookingOut:
    booking = await _get_participant_booking(db, booking_id, current_user)
    _check_customer_cancel(booking, current_user)
    booking = await bookingService.cancel_booking(
        db, booking_id, body.reason if body else None,
    )
    return BookingOut.model_validate(booking)
