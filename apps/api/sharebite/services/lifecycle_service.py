"""
Donation lifecycle engine.

Every transition is a single conditional UPDATE whose WHERE clause encodes
the predecessor status and ownership. Exactly one affected row means the
caller won; zero rows is a normal outcome (the row moved on, or the actor
was never allowed to move it) and is classified after the fact instead of
being raised.

Rows are never locked. Callers must not retry a failed transition without
re-reading the row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from sharebite.core.structured_logging import build_log_context
from sharebite.core.visibility import Viewer, can_claim_category
from sharebite.db.enums import (
    DonationAcceptance,
    DonationStatus,
    Role,
    TransitionFailure,
    can_transition,
)
from sharebite.db.models import Donation, utcnow
from sharebite.schemas.donation import DonationRead
from sharebite.services import donation_events

logger = logging.getLogger(__name__)

CLAIM_CONFLICT_MESSAGE = "This donation was just claimed by another organisation."
CONFLICT_MESSAGE = "This donation was already updated by someone else."
NOT_FOUND_MESSAGE = "Donation not found"


@dataclass
class TransitionResult:
    """Outcome of one conditional transition."""
    donation: DonationRead | None = None
    failure: TransitionFailure | None = None
    message: str | None = None

    @property
    def applied(self) -> bool:
        return self.failure is None


# =============================================================================
# Guards
# =============================================================================

def _from(target: DonationStatus, *sources: DonationStatus) -> ColumnElement[bool]:
    """Status predicate admitting only declared predecessors of target."""
    for source in sources:
        if not can_transition(source, target):
            raise ValueError(f"{source.value} -> {target.value} is not a lifecycle transition")
    if len(sources) == 1:
        return Donation.status == sources[0].value
    return Donation.status.in_([s.value for s in sources])


def _claim_guard(actor: Viewer) -> ColumnElement[bool]:
    categories = [c.value for c in actor.capability.accepted_categories()]
    branches = [
        and_(
            _from(DonationStatus.CLAIMED, DonationStatus.POSTED),
            Donation.acceptance.in_(categories),
        )
    ]
    if actor.capability.accepts_non_edible:
        branches.append(_from(DonationStatus.CLAIMED, DonationStatus.DIVERTED))
    return and_(or_(*branches), Donation.organisation_id.is_(None))


def _status(donation: Donation) -> DonationStatus:
    return DonationStatus(donation.status)


# =============================================================================
# Core conditional write
# =============================================================================

def _apply(
    db: Session,
    *,
    donation_id: UUID,
    actor: Viewer | None,
    action: str,
    guard: ColumnElement[bool],
    values: dict[str, Any],
    explain: Callable[[Donation], TransitionFailure],
    conflict_message: str = CONFLICT_MESSAGE,
) -> TransitionResult:
    before = db.get(Donation, donation_id)
    if before is None:
        return _failed(actor, donation_id, action, TransitionFailure.NOT_FOUND)
    old = donation_events.snapshot(db, before)

    result = db.execute(
        update(Donation)
        .where(Donation.id == donation_id, guard)
        .values(version=Donation.version + 1, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        db.rollback()
        current = db.get(Donation, donation_id, populate_existing=True)
        failure = explain(current) if current is not None else TransitionFailure.NOT_FOUND
        return _failed(actor, donation_id, action, failure, conflict_message)

    db.commit()
    donation = db.get(Donation, donation_id, populate_existing=True)
    new = donation_events.donation_updated(db, donation, old)
    logger.info(
        "Donation transition applied",
        extra=build_log_context(
            user_id=actor.id if actor else None,
            donation_id=donation_id,
            action=action,
            outcome=new.status.value,
        ),
    )
    return TransitionResult(donation=new)


def _failed(
    actor: Viewer | None,
    donation_id: UUID,
    action: str,
    failure: TransitionFailure,
    conflict_message: str = CONFLICT_MESSAGE,
) -> TransitionResult:
    # Lost races are expected traffic, not faults
    logger.info(
        "Donation transition not applied",
        extra=build_log_context(
            user_id=actor.id if actor else None,
            donation_id=donation_id,
            action=action,
            outcome=failure.value,
        ),
    )
    if failure == TransitionFailure.NOT_FOUND:
        message = NOT_FOUND_MESSAGE
    elif failure == TransitionFailure.NOT_PERMITTED:
        message = f"You are not allowed to {action.replace('_', ' ')} this donation."
    else:
        message = conflict_message
    return TransitionResult(failure=failure, message=message)


def _wrong_role(
    db: Session, donation_id: UUID, actor: Viewer, action: str, *roles: Role
) -> TransitionResult | None:
    if actor.role in roles:
        return None
    if db.get(Donation, donation_id) is None:
        return _failed(actor, donation_id, action, TransitionFailure.NOT_FOUND)
    return _failed(actor, donation_id, action, TransitionFailure.NOT_PERMITTED)


# =============================================================================
# Transitions
# =============================================================================

def claim(
    db: Session,
    donation_id: UUID,
    actor: Viewer,
    *,
    volunteer_needed: bool = False,
) -> TransitionResult:
    """posted/diverted -> claimed, for a recipient whose capability covers the row."""
    rejected = _wrong_role(db, donation_id, actor, "claim", Role.RECIPIENT)
    if rejected:
        return rejected

    def explain(current: Donation) -> TransitionFailure:
        if (
            _status(current) in DonationStatus.claimable()
            and current.organisation_id is None
            and not can_claim_category(current, actor)
        ):
            return TransitionFailure.NOT_PERMITTED
        return TransitionFailure.CONFLICT

    return _apply(
        db,
        donation_id=donation_id,
        actor=actor,
        action="claim",
        guard=_claim_guard(actor),
        values={
            "status": DonationStatus.CLAIMED.value,
            "organisation_id": actor.id,
            "volunteer_needed": volunteer_needed,
        },
        explain=explain,
        conflict_message=CLAIM_CONFLICT_MESSAGE,
    )


def volunteer_accept(db: Session, donation_id: UUID, actor: Viewer) -> TransitionResult:
    """claimed -> accepted, when the organisation asked for a volunteer."""
    rejected = _wrong_role(db, donation_id, actor, "accept", Role.VOLUNTEER)
    if rejected:
        return rejected

    def explain(current: Donation) -> TransitionFailure:
        if (
            _status(current) == DonationStatus.CLAIMED
            and current.volunteer_id is None
            and not current.volunteer_needed
        ):
            return TransitionFailure.NOT_PERMITTED
        return TransitionFailure.CONFLICT

    return _apply(
        db,
        donation_id=donation_id,
        actor=actor,
        action="accept",
        guard=and_(
            _from(DonationStatus.ACCEPTED, DonationStatus.CLAIMED),
            Donation.volunteer_needed.is_(True),
            Donation.volunteer_id.is_(None),
        ),
        values={"status": DonationStatus.ACCEPTED.value, "volunteer_id": actor.id},
        explain=explain,
    )


def mark_picked(db: Session, donation_id: UUID, actor: Viewer) -> TransitionResult:
    """
    claimed -> picked (organisation collects itself) or
    accepted -> picked (assigned volunteer collects).
    """
    rejected = _wrong_role(db, donation_id, actor, "pick up", Role.RECIPIENT, Role.VOLUNTEER)
    if rejected:
        return rejected

    def explain(current: Donation) -> TransitionFailure:
        if current.volunteer_id is not None:
            responsible = current.volunteer_id
        else:
            responsible = current.organisation_id
        if responsible != actor.id:
            return TransitionFailure.NOT_PERMITTED
        return TransitionFailure.CONFLICT

    return _apply(
        db,
        donation_id=donation_id,
        actor=actor,
        action="pick up",
        guard=or_(
            and_(
                _from(DonationStatus.PICKED, DonationStatus.CLAIMED),
                Donation.organisation_id == actor.id,
                Donation.volunteer_id.is_(None),
            ),
            and_(
                _from(DonationStatus.PICKED, DonationStatus.ACCEPTED),
                Donation.volunteer_id == actor.id,
            ),
        ),
        values={"status": DonationStatus.PICKED.value},
        explain=explain,
    )


def mark_delivered(db: Session, donation_id: UUID, actor: Viewer) -> TransitionResult:
    """picked -> delivered, by whoever picked it up."""
    rejected = _wrong_role(db, donation_id, actor, "deliver", Role.RECIPIENT, Role.VOLUNTEER)
    if rejected:
        return rejected

    def explain(current: Donation) -> TransitionFailure:
        responsible = current.volunteer_id or current.organisation_id
        if responsible != actor.id:
            return TransitionFailure.NOT_PERMITTED
        return TransitionFailure.CONFLICT

    return _apply(
        db,
        donation_id=donation_id,
        actor=actor,
        action="deliver",
        guard=and_(
            _from(DonationStatus.DELIVERED, DonationStatus.PICKED),
            or_(
                and_(Donation.volunteer_id.is_(None), Donation.organisation_id == actor.id),
                Donation.volunteer_id == actor.id,
            ),
        ),
        values={"status": DonationStatus.DELIVERED.value, "delivered_at": utcnow()},
        explain=explain,
    )


def confirm(db: Session, donation_id: UUID, actor: Viewer) -> TransitionResult:
    """delivered -> confirmed, by the claiming organisation."""
    rejected = _wrong_role(db, donation_id, actor, "confirm", Role.RECIPIENT)
    if rejected:
        return rejected

    def explain(current: Donation) -> TransitionFailure:
        if current.organisation_id != actor.id:
            return TransitionFailure.NOT_PERMITTED
        return TransitionFailure.CONFLICT

    return _apply(
        db,
        donation_id=donation_id,
        actor=actor,
        action="confirm",
        guard=and_(
            _from(DonationStatus.CONFIRMED, DonationStatus.DELIVERED),
            Donation.organisation_id == actor.id,
        ),
        values={"status": DonationStatus.CONFIRMED.value},
        explain=explain,
    )


def set_volunteer_needed(
    db: Session, donation_id: UUID, actor: Viewer, needed: bool
) -> TransitionResult:
    """Toggle the volunteer request while no volunteer has accepted yet."""
    rejected = _wrong_role(db, donation_id, actor, "update", Role.RECIPIENT)
    if rejected:
        return rejected

    def explain(current: Donation) -> TransitionFailure:
        if current.organisation_id != actor.id:
            return TransitionFailure.NOT_PERMITTED
        return TransitionFailure.CONFLICT

    return _apply(
        db,
        donation_id=donation_id,
        actor=actor,
        action="update",
        guard=and_(
            Donation.status == DonationStatus.CLAIMED.value,
            Donation.organisation_id == actor.id,
            Donation.volunteer_id.is_(None),
        ),
        values={"volunteer_needed": needed},
        explain=explain,
    )


# =============================================================================
# Sweeps (system actor)
# =============================================================================

def _sweep(
    db: Session,
    *,
    action: str,
    candidates: ColumnElement[bool],
    values: dict[str, Any],
) -> list[DonationRead]:
    rows = db.execute(select(Donation).where(candidates)).scalars().all()
    if not rows:
        return []
    old = {read.id: read for read in donation_events.snapshot_many(db, rows)}

    result = db.execute(
        update(Donation)
        .where(Donation.id.in_(list(old)), candidates)
        .values(version=Donation.version + 1, updated_at=utcnow(), **values)
        .returning(Donation.id)
        .execution_options(synchronize_session=False)
    )
    changed_ids = [row[0] for row in result.all()]
    db.commit()
    if not changed_ids:
        return []

    changed = db.execute(
        select(Donation)
        .where(Donation.id.in_(changed_ids))
        .execution_options(populate_existing=True)
    ).scalars().all()
    published = [donation_events.donation_updated(db, d, old.get(d.id)) for d in changed]
    logger.info(
        "Donation sweep finished (%d rows)",
        len(published),
        extra=build_log_context(action=action, outcome=str(len(published))),
    )
    return published


def expire_overdue(db: Session, *, now: datetime | None = None) -> list[DonationRead]:
    """posted -> expired for every row whose expiry has passed."""
    now = now or utcnow()
    return _sweep(
        db,
        action="expire",
        candidates=and_(
            _from(DonationStatus.EXPIRED, DonationStatus.POSTED),
            Donation.expiry < now,
        ),
        values={"status": DonationStatus.EXPIRED.value},
    )


def divert_near_expiry(
    db: Session,
    *,
    window_minutes: int,
    now: datetime | None = None,
) -> list[DonationRead]:
    """
    posted -> diverted for edible rows expiring within the window.

    A window of zero or less disables diversion.
    """
    if window_minutes <= 0:
        return []
    now = now or utcnow()
    return _sweep(
        db,
        action="divert",
        candidates=and_(
            _from(DonationStatus.DIVERTED, DonationStatus.POSTED),
            Donation.acceptance == DonationAcceptance.EDIBLE.value,
            Donation.expiry >= now,
            Donation.expiry <= now + timedelta(minutes=window_minutes),
        ),
        values={"status": DonationStatus.DIVERTED.value},
    )


def delete_donation(db: Session, donation_id: UUID) -> bool:
    """Administrative removal. Returns False when the row did not exist."""
    result = db.execute(
        delete(Donation)
        .where(Donation.id == donation_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        return False
    db.commit()
    donation_events.donation_deleted(donation_id)
    logger.info(
        "Donation deleted",
        extra=build_log_context(donation_id=donation_id, action="delete", outcome="deleted"),
    )
    return True
