"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from an external cron or the bundled worker.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sharebite.core.config import settings
from sharebite.core.deps import get_db
from sharebite.services import lifecycle_service


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


class SweepResponse(BaseModel):
    updated: int
    donation_ids: list[UUID]


@router.post("/scheduled/expire-donations", response_model=SweepResponse)
def expire_donations(db: Session = Depends(get_db)):
    """Move every overdue posted donation to expired."""
    changed = lifecycle_service.expire_overdue(db)
    return SweepResponse(updated=len(changed), donation_ids=[d.id for d in changed])


@router.post("/scheduled/divert-donations", response_model=SweepResponse)
def divert_donations(
    window_minutes: int | None = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    """
    Move edible donations close to expiry into the non-edible queue.

    The window defaults to DIVERSION_WINDOW_MINUTES; a window of 0 is a no-op.
    """
    window = settings.DIVERSION_WINDOW_MINUTES if window_minutes is None else window_minutes
    changed = lifecycle_service.divert_near_expiry(db, window_minutes=window)
    return SweepResponse(updated=len(changed), donation_ids=[d.id for d in changed])


@router.delete("/donations/{donation_id}", status_code=204)
def delete_donation(donation_id: UUID, db: Session = Depends(get_db)):
    """Administrative removal; subscribers receive a delete event."""
    if not lifecycle_service.delete_donation(db, donation_id):
        raise HTTPException(status_code=404, detail="Donation not found")
