"""
Pydantic v2 schemas for the Bookings API
========================================

Request/response schemas for booking requests, status changes,
cancellation and the booking statistics cards.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from truelocal.models import BookingStatus, BookingUrgency, PricingType

from .common import CamelModel, ProfileSummary

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class BookingCreate(CamelModel):
    """Booking request as submitted by a customer.

    The contact fields are stored as given; they are not copied from (or
    kept in sync with) the customer's profile.
    """

    service_id: uuid.UUID
    provider_id: uuid.UUID
    customer_name: str = Field(min_length=1, max_length=200)
    customer_phone: str = Field(min_length=1, max_length=30)
    customer_email: str = Field(min_length=3, max_length=320)
    service_address: str = Field(min_length=1, max_length=500)
    service_details: Optional[str] = None
    booking_date: date
    booking_time: str = Field(description="HH:MM")
    urgency: BookingUrgency = Field(default=BookingUrgency.NORMAL)

    @field_validator("booking_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        if not _TIME_PATTERN.match(v):
            raise ValueError("booking_time must be formatted HH:MM")
        return v


class BookingStatusUpdate(CamelModel):
    status: BookingStatus
    total_amount: Optional[Decimal] = Field(
        default=None, ge=0, description="Final amount; recorded only on completion",
    )


class BookingCancelRequest(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class BookingServiceSummary(CamelModel):
    id: uuid.UUID
    title: str
    pricing_type: PricingType
    pricing_amount: Optional[Decimal] = None


class BookingOut(CamelModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    provider_id: uuid.UUID
    service_id: Optional[uuid.UUID] = None
    customer_name: str
    customer_phone: str
    customer_email: str
    service_address: str
    service_details: Optional[str] = None
    booking_date: date
    booking_time: str
    urgency: BookingUrgency
    status: BookingStatus
    total_amount: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime
    service: Optional[BookingServiceSummary] = None
    customer_profile: Optional[ProfileSummary] = None
    provider_profile: Optional[ProfileSummary] = None


class BookingCreatedResponse(CamelModel):
    """A new booking and the conversation its request message went to."""

    booking: BookingOut
    conversation_id: uuid.UUID


class BookingStatsOut(CamelModel):
    total: int
    pending: int
    confirmed: int
    completed: int
    cancelled: int
    this_week: int
    this_month: int
    total_revenue: float
    weekly_revenue: float
    monthly_revenue: float
