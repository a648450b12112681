"""
TrueLocal SQLAlchemy Models
===========================

Central import point for all ORM models. Import ``Base`` from here for the
``create_all`` convenience in scripts and tests.

Usage::

    from truelocal.models import Base, Profile, Service, Booking
"""

# -- Base & Mixins --
from .base import Base, CreatedAtMixin, TimestampMixin, UUIDPrimaryKeyMixin

# -- Profiles --
from .profile import Profile, UserType, role_column

# -- Listings --
from .listing import PricingType, Service, ServiceStatus

# -- Bookings --
from .booking import Booking, BookingStatus, BookingUrgency

# -- Messaging --
from .conversation import Conversation, Message

# -- Reviews --
from .review import Review

__all__ = [
    "Base",
    "CreatedAtMixin",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Profile",
    "UserType",
    "role_column",
    "PricingType",
    "Service",
    "ServiceStatus",
    "Booking",
    "BookingStatus",
    "BookingUrgency",
    "Conversation",
    "Message",
    "Review",
]
