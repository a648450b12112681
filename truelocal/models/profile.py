"""
SQLAlchemy model for the profiles table.

One row per authenticated account.  The ``id`` is the subject issued by the
hosted auth provider, so profiles are created explicitly at signup rather
than generated here.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean, Enum, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, enum_values


class UserType(str, enum.Enum):
    CUSTOMER = "customer"
    PROVIDER = "provider"


class Profile(TimestampMixin, Base):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)

    # Identity
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Role
    user_type: Mapped[UserType] = mapped_column(
        Enum(UserType, name="user_type", values_callable=enum_values),
        nullable=False,
        default=UserType.CUSTOMER,
    )

    # Business metadata (providers)
    business_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    business_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    service_area: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    years_experience: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email}, user_type={self.user_type})>"


def role_column(user_type: "UserType | str") -> str:
    """Foreign-key column that scopes rows to a user acting in ``user_type``."""
    return "customer_id" if UserType(user_type) is UserType.CUSTOMER else "provider_id"
