"""
Pydantic v2 schemas for the Listings API
========================================

Request/response schemas for provider listings (services), the public
browse page, listing statistics and the reviews shown on a listing.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator

from truelocal.models import PricingType, ServiceStatus

from .common import CamelModel, ProfileSummary

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class ListingCreate(CamelModel):
    """Fields a provider fills in on the add-listing form."""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1, max_length=100)
    specific_service: str = Field(default="", max_length=200)
    pricing_type: PricingType
    pricing_amount: Optional[Decimal] = Field(
        default=None, ge=0, description="Ignored for custom pricing",
    )
    currency: str = Field(default="USD", min_length=3, max_length=3)
    location_address: Optional[str] = Field(default=None, max_length=500)
    location_city: str = Field(min_length=1, max_length=100)
    location_state: str = Field(min_length=1, max_length=100)
    location_zip: Optional[str] = Field(default=None, max_length=20)
    service_radius: int = Field(default=10, ge=0, le=500, description="Miles")
    availability_days: List[str] = Field(default_factory=list)
    availability_start: str = Field(default="09:00", description="HH:MM")
    availability_end: str = Field(default="17:00", description="HH:MM")
    features: List[str] = Field(default_factory=list)
    requirements: Optional[str] = None

    @field_validator("availability_start", "availability_end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        if not _TIME_PATTERN.match(v):
            raise ValueError("times must be formatted HH:MM")
        return v


class ListingStatusUpdate(CamelModel):
    status: ServiceStatus


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class ListingOut(CamelModel):
    id: uuid.UUID
    provider_id: uuid.UUID
    title: str
    description: str
    category: str
    specific_service: str
    pricing_type: PricingType
    pricing_amount: Optional[Decimal] = None
    currency: str
    location_address: Optional[str] = None
    location_city: str
    location_state: str
    location_zip: Optional[str] = None
    service_radius: int
    availability_days: List[str]
    availability_start: str
    availability_end: str
    features: List[str]
    requirements: Optional[str] = None
    images: List[str]
    status: ServiceStatus
    views: int
    rating: Decimal
    review_count: int
    created_at: datetime
    updated_at: datetime
    provider: Optional[ProfileSummary] = None


class ListingStatsOut(CamelModel):
    total: int
    active: int
    paused: int
    inactive: int
    total_views: int
    total_rating: float
    total_reviews: int
    average_rating: float


class ViewCountOut(CamelModel):
    views: int


class ReviewOut(CamelModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    service_id: Optional[uuid.UUID] = None
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    customer_profile: Optional[ProfileSummary] = None
