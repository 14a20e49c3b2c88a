"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator

from sharebite.db.enums import (
    ORGANISATION_TYPES_BY_ACCEPTANCE,
    AcceptanceType,
    OrganisationType,
    Role,
)
from sharebite.schemas.user import UserRead


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    role: str
    token_version: int


class UserSession(BaseModel):
    """
    Full session context for authenticated requests.

    Returned by the get_current_session dependency and passed explicitly
    into every service call that needs the actor.
    """
    user_id: UUID
    role: Role  # Validated enum
    email: str
    name: str
    acceptance_type: AcceptanceType | None = None
    latitude: float | None = None
    longitude: float | None = None


class SignUpRequest(BaseModel):
    """Account creation with the role capability profile."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)
    phone: str | None = Field(None, max_length=50)
    role: Role
    address: str = Field("", max_length=2000)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    acceptance_type: AcceptanceType | None = None
    organisation_type: OrganisationType | None = None

    @model_validator(mode="after")
    def check_recipient_profile(self) -> "SignUpRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        if self.role != Role.RECIPIENT:
            # Capability fields only apply to recipient organisations
            self.acceptance_type = None
            self.organisation_type = None
            return self
        if self.acceptance_type is None:
            self.acceptance_type = AcceptanceType.EDIBLE
        allowed = ORGANISATION_TYPES_BY_ACCEPTANCE[self.acceptance_type]
        if self.organisation_type is not None and self.organisation_type not in allowed:
            raise ValueError(
                f"Organisation type '{self.organisation_type.value}' cannot accept "
                f"'{self.acceptance_type.value}' donations"
            )
        return self


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class SessionResponse(BaseModel):
    """Returned by sign-in; the token is also set as the session cookie."""
    token: str
    user: UserRead
    dashboard_path: str


class MeResponse(BaseModel):
    """Response schema for GET /auth/me endpoint."""
    user: UserRead
    dashboard_path: str
