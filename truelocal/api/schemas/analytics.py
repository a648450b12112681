"""
Pydantic v2 schemas for the Analytics API
=========================================

Response schema for the account dashboard.  Built directly from the
``DashboardStats`` dataclass returned by the analytics service.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import List, Optional

from pydantic import Field

from .common import CamelModel


class TopServiceOut(CamelModel):
    service_id: uuid.UUID
    title: str
    booking_count: int
    revenue: float


class ActivityItemOut(CamelModel):
    type: str = Field(description="booking or review")
    title: str
    description: str
    timestamp: dt.datetime
    status: Optional[str] = None


class TrendPointOut(CamelModel):
    date: dt.date
    bookings: int
    revenue: float


class RatingBucketOut(CamelModel):
    rating: int = Field(ge=1, le=5)
    count: int


class DashboardStatsOut(CamelModel):
    total_bookings: int
    total_revenue: float
    average_rating: float
    response_rate: int = Field(ge=0, le=100, description="Percent answered within 24h")
    completed_jobs: int
    pending_bookings: int
    monthly_revenue: float
    monthly_bookings: int
    total_services: int
    active_services: int
    top_services: List[TopServiceOut]
    recent_activity: List[ActivityItemOut]
    booking_trends: List[TrendPointOut]
    rating_distribution: List[RatingBucketOut]
