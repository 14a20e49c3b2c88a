"""Donation endpoints: intake, lifecycle transitions and dashboard views."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from sharebite.core.deps import (
    get_current_session,
    get_current_user,
    get_db,
    require_csrf_header,
    require_roles,
    viewer_for,
)
from sharebite.db.enums import Role, TransitionFailure
from sharebite.schemas.auth import UserSession
from sharebite.schemas.donation import (
    ClaimRequest,
    DashboardResponse,
    DonationCreate,
    DonationRead,
    RouteResponse,
    TransitionResponse,
    VolunteerNeededRequest,
)
from sharebite.services import donation_query_service, donation_service, lifecycle_service
from sharebite.services.donation_query_service import UnknownListError
from sharebite.services.donation_service import DonationValidationError
from sharebite.services.lifecycle_service import TransitionResult
from sharebite.utils.geo import Coordinate

router = APIRouter()

FAILURE_STATUS = {
    TransitionFailure.NOT_FOUND: 404,
    TransitionFailure.NOT_PERMITTED: 403,
    TransitionFailure.CONFLICT: 409,
}

recipient_only = require_roles([Role.RECIPIENT])
volunteer_only = require_roles([Role.VOLUNTEER])
carrier = require_roles([Role.RECIPIENT, Role.VOLUNTEER])


def _transition_response(result: TransitionResult) -> TransitionResponse:
    if not result.applied:
        raise HTTPException(status_code=FAILURE_STATUS[result.failure], detail=result.message)
    return TransitionResponse(donation=result.donation)


# =============================================================================
# Intake
# =============================================================================

@router.post(
    "",
    response_model=DonationRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header), Depends(require_roles([Role.DONOR]))],
)
def create_donation(
    data: DonationCreate,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Post a donation offer.

    Quantity units are normalized (e.g. 2000 g -> 2.000 kg) and expiry
    presets resolved before the row is written.
    """
    try:
        return donation_service.create_donation(db, user, data)
    except DonationValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)


# =============================================================================
# Views
# =============================================================================

@router.get("/views/me", response_model=DashboardResponse)
def get_dashboard(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Every list on the caller's dashboard."""
    viewer = viewer_for(session)
    return DashboardResponse(
        role=session.role,
        lists=donation_query_service.get_dashboard(db, viewer),
    )


@router.get("/views/me/{list_name}", response_model=list[DonationRead])
def get_dashboard_list(
    list_name: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        return donation_query_service.get_list(db, viewer_for(session), list_name)
    except UnknownListError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{donation_id}", response_model=DonationRead)
def get_donation(
    donation_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    donation = donation_query_service.get_donation(db, donation_id)
    if not donation:
        raise HTTPException(status_code=404, detail="Donation not found")
    return donation_query_service.enrich(db, [donation])[0]


@router.get("/{donation_id}/route", response_model=RouteResponse)
def get_route(
    donation_id: UUID,
    latitude: float | None = Query(None, ge=-90, le=90),
    longitude: float | None = Query(None, ge=-180, le=180),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Distance and driving directions from the caller to a donation.

    Uses the given coordinates, falling back to the caller's stored location.
    """
    donation = donation_query_service.get_donation(db, donation_id)
    if not donation:
        raise HTTPException(status_code=404, detail="Donation not found")

    if latitude is None or longitude is None:
        latitude, longitude = session.latitude, session.longitude
    if latitude is None or longitude is None:
        raise HTTPException(status_code=422, detail="Your location is required for directions")

    distance_km, url = donation_query_service.route_to(donation, Coordinate(latitude, longitude))
    return RouteResponse(donation_id=donation.id, distance_km=round(distance_km, 3), directions_url=url)


# =============================================================================
# Lifecycle transitions
# =============================================================================

@router.post(
    "/{donation_id}/claim",
    response_model=TransitionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def claim_donation(
    donation_id: UUID,
    data: ClaimRequest | None = None,
    session: UserSession = Depends(recipient_only),
    db: Session = Depends(get_db),
):
    """
    Claim a posted or diverted donation.

    Returns 409 if another organisation claimed it first.
    """
    data = data or ClaimRequest()
    result = lifecycle_service.claim(
        db, donation_id, viewer_for(session), volunteer_needed=data.volunteer_needed
    )
    return _transition_response(result)


@router.post(
    "/{donation_id}/volunteer-needed",
    response_model=TransitionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def set_volunteer_needed(
    donation_id: UUID,
    data: VolunteerNeededRequest,
    session: UserSession = Depends(recipient_only),
    db: Session = Depends(get_db),
):
    result = lifecycle_service.set_volunteer_needed(
        db, donation_id, viewer_for(session), data.volunteer_needed
    )
    return _transition_response(result)


@router.post(
    "/{donation_id}/accept",
    response_model=TransitionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def accept_donation(
    donation_id: UUID,
    session: UserSession = Depends(volunteer_only),
    db: Session = Depends(get_db),
):
    """Volunteer takes on pickup and delivery."""
    return _transition_response(
        lifecycle_service.volunteer_accept(db, donation_id, viewer_for(session))
    )


@router.post(
    "/{donation_id}/picked",
    response_model=TransitionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def mark_picked(
    donation_id: UUID,
    session: UserSession = Depends(carrier),
    db: Session = Depends(get_db),
):
    return _transition_response(
        lifecycle_service.mark_picked(db, donation_id, viewer_for(session))
    )


@router.post(
    "/{donation_id}/delivered",
    response_model=TransitionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def mark_delivered(
    donation_id: UUID,
    session: UserSession = Depends(carrier),
    db: Session = Depends(get_db),
):
    return _transition_response(
        lifecycle_service.mark_delivered(db, donation_id, viewer_for(session))
    )


@router.post(
    "/{donation_id}/confirm",
    response_model=TransitionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def confirm_donation(
    donation_id: UUID,
    session: UserSession = Depends(recipient_only),
    db: Session = Depends(get_db),
):
    """Recipient confirms receipt."""
    return _transition_response(
        lifecycle_service.confirm(db, donation_id, viewer_for(session))
    )
