"""SQLAlchemy ORM models for users and donations."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean, CheckConstraint, Float, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharebite.db.base import Base
from sharebite.db.enums import DonationStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Users
# =============================================================================

class User(Base):
    """
    Identity plus role capability profile.

    acceptance_type and organisation_type are only meaningful for
    recipients and stay null for donors and volunteers.
    """
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    acceptance_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    organisation_type: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Bumped to revoke every outstanding session token
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    donations: Mapped[list["Donation"]] = relationship(
        back_populates="donor", foreign_keys="Donation.donor_id"
    )


# =============================================================================
# Donations
# =============================================================================

class Donation(Base):
    """
    The shared mutable entity every dashboard watches.

    Mutable columns (status, organisation_id, volunteer_id,
    volunteer_needed, delivered_at) are only written through the
    conditional updates in lifecycle_service. `version` increases by one
    on every successful write and orders feed events for the same row.
    """
    __tablename__ = "donations"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_donations_quantity_positive"),
        Index("idx_donations_status", "status"),
        Index("idx_donations_donor", "donor_id"),
        Index("idx_donations_organisation", "organisation_id", "status"),
        Index("idx_donations_volunteer", "volunteer_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    donor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    food_type: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    quantity_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    acceptance: Mapped[str] = mapped_column(String(20), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    expiry: Mapped[datetime] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=DonationStatus.POSTED.value, nullable=False
    )
    organisation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    volunteer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    volunteer_needed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    donor: Mapped["User"] = relationship(back_populates="donations", foreign_keys=[donor_id])
