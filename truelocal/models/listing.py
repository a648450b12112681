"""
SQLAlchemy model for the services table (provider listings).

A listing is owned by exactly one provider profile.  ``views``, ``rating``
and ``review_count`` are denormalized counters kept on the row so the
browse pages never aggregate reviews on the fly.
"""

import enum
import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_values


class PricingType(str, enum.Enum):
    HOURLY = "hourly"
    FIXED = "fixed"
    CUSTOM = "custom"


class ServiceStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    INACTIVE = "inactive"


class Service(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "services"
    __table_args__ = (
        Index("ix_services_provider_status", "provider_id", "status"),
        Index("ix_services_category", "category"),
    )

    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Offering
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    specific_service: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    # Pricing
    pricing_type: Mapped[PricingType] = mapped_column(
        Enum(PricingType, name="pricing_type", values_callable=enum_values),
        nullable=False,
    )
    pricing_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Location
    location_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    location_city: Mapped[str] = mapped_column(String(100), nullable=False)
    location_state: Mapped[str] = mapped_column(String(100), nullable=False)
    location_zip: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    service_radius: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    # Availability ("HH:MM" strings, day names)
    availability_days: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    availability_start: Mapped[str] = mapped_column(String(5), nullable=False, default="09:00")
    availability_end: Mapped[str] = mapped_column(String(5), nullable=False, default="17:00")

    features: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    images: Mapped[list[Any]] = mapped_column(JSONB, nullable=False, default=list)

    # Lifecycle
    status: Mapped[ServiceStatus] = mapped_column(
        Enum(ServiceStatus, name="service_status", values_callable=enum_values),
        nullable=False,
        default=ServiceStatus.ACTIVE,
    )

    # Denormalized counters
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating: Mapped[Decimal] = mapped_column(Numeric(3, 2), nullable=False, default=Decimal("0"))
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    provider: Mapped["Profile"] = relationship("Profile")

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, title={self.title!r}, status={self.status})>"
