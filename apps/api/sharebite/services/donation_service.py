"""Donation intake: validate, normalize and create donation offers."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from sharebite.core.structured_logging import build_log_context
from sharebite.db.enums import NEVER_EXPIRES, DonationAcceptance, DonationStatus
from sharebite.db.models import Donation, User
from sharebite.schemas.donation import DonationCreate, DonationRead
from sharebite.services import donation_events
from sharebite.utils.datetime_parsing import ExpiryParseError, resolve_expiry
from sharebite.utils.units import normalize_quantity

logger = logging.getLogger(__name__)


class DonationValidationError(Exception):
    """Donation input rejected before any write."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def _resolve_location(payload: DonationCreate) -> tuple[float, float]:
    if (payload.latitude is None) != (payload.longitude is None):
        raise DonationValidationError("location", "Latitude and longitude must be provided together")
    if payload.latitude is not None:
        return payload.latitude, payload.longitude
    raise DonationValidationError(
        "location",
        "Location is required. Allow location access or enter your location manually.",
    )


def _resolve_expiry(payload: DonationCreate, now: datetime | None) -> datetime:
    if payload.acceptance == DonationAcceptance.NON_EDIBLE:
        return NEVER_EXPIRES
    try:
        return resolve_expiry(payload.expiry or "", payload.custom_expiry, now=now)
    except ExpiryParseError as exc:
        raise DonationValidationError("expiry", str(exc)) from exc


def create_donation(
    db: Session,
    donor: User,
    payload: DonationCreate,
    *,
    now: datetime | None = None,
) -> DonationRead:
    """
    Create a posted donation for donor.

    Every field is validated before the insert; the insert event is
    published after commit.

    Raises:
        DonationValidationError: invalid quantity/unit, expiry or location
    """
    try:
        quantity, unit = normalize_quantity(payload.quantity, payload.quantity_unit)
    except ValueError as exc:
        raise DonationValidationError("quantity", str(exc)) from exc

    expiry = _resolve_expiry(payload, now)
    latitude, longitude = _resolve_location(payload)

    donation = Donation(
        donor_id=donor.id,
        food_type=payload.food_type,
        quantity=quantity,
        quantity_unit=unit.value,
        acceptance=payload.acceptance.value,
        latitude=latitude,
        longitude=longitude,
        expiry=expiry,
        status=DonationStatus.POSTED.value,
        organisation_id=None,
        volunteer_id=None,
        volunteer_needed=False,
        version=1,
    )
    db.add(donation)
    db.commit()
    db.refresh(donation)

    logger.info(
        "Donation posted",
        extra=build_log_context(
            user_id=donor.id, donation_id=donation.id, action="create", outcome="posted"
        ),
    )
    return donation_events.donation_inserted(db, donation)
