"""Pydantic schemas for donations."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from sharebite.db.enums import DonationAcceptance, DonationStatus, QuantityUnit, Role
from sharebite.schemas.user import PartySummary
from sharebite.utils.datetime_parsing import ensure_utc


class DonationCreate(BaseModel):
    """
    Donation form submission.

    quantity_unit accepts aliases (g, ml, litre, packet, plate...) which are
    normalized on create. expiry is a preset ("1 hour", "2 hours", "3 hours")
    or "custom" with custom_expiry; it is ignored for non-edible donations.
    """
    food_type: str = Field(..., min_length=1, max_length=255)
    quantity: Decimal = Field(..., gt=0, max_digits=15, decimal_places=3)
    quantity_unit: str = Field(..., min_length=1, max_length=20)
    acceptance: DonationAcceptance = DonationAcceptance.EDIBLE
    expiry: str | None = Field(None, max_length=50)
    custom_expiry: str | None = Field(None, max_length=100)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)

    @field_validator("food_type")
    @classmethod
    def strip_food_type(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Food type is required")
        return value


class DonationRead(BaseModel):
    """Full donation row, optionally enriched with party summaries."""
    id: UUID
    donor_id: UUID
    food_type: str
    quantity: Decimal
    quantity_unit: QuantityUnit
    acceptance: DonationAcceptance
    latitude: float
    longitude: float
    expiry: datetime
    status: DonationStatus
    organisation_id: UUID | None = None
    volunteer_id: UUID | None = None
    volunteer_needed: bool = False
    version: int
    created_at: datetime
    updated_at: datetime
    delivered_at: datetime | None = None

    # Enrichment (resolved names/addresses)
    donor: PartySummary | None = None
    organisation: PartySummary | None = None
    volunteer: PartySummary | None = None

    model_config = {"from_attributes": True}

    @field_validator("expiry", "created_at", "updated_at", "delivered_at")
    @classmethod
    def as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class ClaimRequest(BaseModel):
    volunteer_needed: bool = False


class VolunteerNeededRequest(BaseModel):
    volunteer_needed: bool


class TransitionResponse(BaseModel):
    """Successful lifecycle transition."""
    donation: DonationRead


class DashboardResponse(BaseModel):
    """All of a viewer's dashboard lists, keyed by list name."""
    role: Role
    lists: dict[str, list[DonationRead]]


class RouteResponse(BaseModel):
    donation_id: UUID
    distance_km: float
    directions_url: str
