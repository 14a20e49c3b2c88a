"""Donor analytics endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sharebite.core.deps import get_db, require_roles
from sharebite.db.enums import Role
from sharebite.schemas.analytics import ContributionsResponse
from sharebite.schemas.auth import UserSession
from sharebite.services import analytics_service

router = APIRouter()


@router.get("/contributions", response_model=ContributionsResponse)
def get_contributions(
    months: int = Query(6, ge=1, le=24),
    session: UserSession = Depends(require_roles([Role.DONOR])),
    db: Session = Depends(get_db),
):
    """Caller's donations per month, most recent `months` months."""
    return analytics_service.get_contributions(db, session.user_id, months=months)
