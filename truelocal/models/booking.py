"""
SQLAlchemy model for the bookings table.

A booking links a customer to a provider for one listing.  The customer
contact fields are a snapshot taken when the request is made and are never
synchronised with the live profile afterwards.  Deleting the listing
leaves the booking in place with ``service_id`` cleared.
"""

import enum
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_values


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingUrgency(str, enum.Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    EMERGENCY = "emergency"


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_customer_created", "customer_id", "created_at"),
        Index("ix_bookings_provider_created", "provider_id", "created_at"),
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Contact snapshot
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(30), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(320), nullable=False)
    service_address: Mapped[str] = mapped_column(String(500), nullable=False)
    service_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Schedule
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    booking_time: Mapped[str] = mapped_column(String(10), nullable=False)
    urgency: Mapped[BookingUrgency] = mapped_column(
        Enum(BookingUrgency, name="booking_urgency", values_callable=enum_values),
        nullable=False,
        default=BookingUrgency.NORMAL,
    )

    # Lifecycle
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=enum_values),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Relationships
    service: Mapped[Optional["Service"]] = relationship("Service")
    customer_profile: Mapped["Profile"] = relationship("Profile", foreign_keys=[customer_id])
    provider_profile: Mapped["Profile"] = relationship("Profile", foreign_keys=[provider_id])

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, service={self.service_id}, status={self.status})>"
