"""User directory endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from sharebite.core.config import settings
from sharebite.core.deps import get_current_session, get_db
from sharebite.db.enums import AcceptanceType
from sharebite.schemas.auth import UserSession
from sharebite.schemas.user import NearestOrganisation
from sharebite.services import donation_query_service
from sharebite.utils.geo import Coordinate

router = APIRouter()


@router.get("/organisations/nearest", response_model=list[NearestOrganisation])
def nearest_organisations(
    latitude: float | None = Query(None, ge=-90, le=90),
    longitude: float | None = Query(None, ge=-180, le=180),
    limit: int | None = Query(None, ge=1, le=50),
    acceptance: AcceptanceType | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Recipient organisations closest to a point, nearest first.

    Defaults to the caller's stored location.
    """
    if latitude is None or longitude is None:
        latitude, longitude = session.latitude, session.longitude
    if latitude is None or longitude is None:
        raise HTTPException(status_code=422, detail="A location is required")

    return donation_query_service.nearest_organisations(
        db,
        Coordinate(latitude, longitude),
        limit=limit or settings.NEAREST_DEFAULT_LIMIT,
        acceptance=acceptance,
    )
