"""Pydantic schemas for users."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from sharebite.db.enums import AcceptanceType, OrganisationType, Role


class UserRead(BaseModel):
    """Public profile of a user."""
    id: UUID
    email: str
    name: str
    phone: str | None = None
    role: Role
    address: str
    latitude: float | None = None
    longitude: float | None = None
    acceptance_type: AcceptanceType | None = None
    organisation_type: OrganisationType | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PartySummary(BaseModel):
    """Display details for a party referenced by a donation."""
    id: UUID
    name: str
    address: str
    latitude: float | None = None
    longitude: float | None = None

    model_config = {"from_attributes": True}


class NearestOrganisation(BaseModel):
    id: UUID
    name: str
    organisation_type: OrganisationType
    acceptance_type: AcceptanceType | None
    address: str
    latitude: float
    longitude: float
    distance_km: float
