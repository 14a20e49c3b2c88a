"""Matching/query layer: role-filtered views over donations."""

from __future__ import annotations

from typing import Callable, Iterable
from uuid import UUID

from sqlalchemy import and_, false, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from sharebite.core.visibility import DASHBOARDS, Viewer, list_names
from sharebite.db.enums import AcceptanceType, DonationStatus, Role
from sharebite.db.models import Donation, User
from sharebite.schemas.donation import DonationRead
from sharebite.schemas.user import NearestOrganisation, PartySummary
from sharebite.utils.geo import Coordinate, directions_url, haversine_km, nearest


class UnknownListError(ValueError):
    """Requested list is not part of the viewer's dashboard."""


# =============================================================================
# SQL equivalents of core.visibility list specs
# =============================================================================

def _status_is(*statuses: DonationStatus) -> ColumnElement[bool]:
    if len(statuses) == 1:
        return Donation.status == statuses[0].value
    return Donation.status.in_([s.value for s in statuses])


def _recipient_posted(viewer: Viewer) -> ColumnElement[bool]:
    categories = [c.value for c in viewer.capability.accepted_categories()]
    return and_(_status_is(DonationStatus.POSTED), Donation.acceptance.in_(categories))


def _recipient_diverted(viewer: Viewer) -> ColumnElement[bool]:
    if not viewer.capability.accepts_non_edible:
        return false()
    return _status_is(DonationStatus.DIVERTED)


def _organisation_owned(*statuses: DonationStatus) -> Callable[[Viewer], ColumnElement[bool]]:
    return lambda v: and_(Donation.organisation_id == v.id, _status_is(*statuses))


def _donor_owned(*statuses: DonationStatus) -> Callable[[Viewer], ColumnElement[bool]]:
    return lambda v: and_(Donation.donor_id == v.id, _status_is(*statuses))


def _volunteer_owned(*statuses: DonationStatus) -> Callable[[Viewer], ColumnElement[bool]]:
    return lambda v: and_(Donation.volunteer_id == v.id, _status_is(*statuses))


def _volunteer_available(viewer: Viewer) -> ColumnElement[bool]:
    return and_(
        _status_is(DonationStatus.CLAIMED),
        Donation.volunteer_needed.is_(True),
        Donation.volunteer_id.is_(None),
    )


LIST_FILTERS: dict[Role, dict[str, Callable[[Viewer], ColumnElement[bool]]]] = {
    Role.RECIPIENT: {
        "posted": _recipient_posted,
        "diverted": _recipient_diverted,
        "claimed": _organisation_owned(DonationStatus.CLAIMED),
        "accepted": _organisation_owned(DonationStatus.ACCEPTED),
        "picked": _organisation_owned(DonationStatus.PICKED),
        "delivered": _organisation_owned(DonationStatus.DELIVERED),
        "confirmed": _organisation_owned(DonationStatus.CONFIRMED),
    },
    Role.DONOR: {
        "unclaimed": _donor_owned(DonationStatus.POSTED),
        "diverted": _donor_owned(DonationStatus.DIVERTED),
        "in_progress": _donor_owned(*DonationStatus.in_progress()),
        "delivered": _donor_owned(DonationStatus.DELIVERED),
        "confirmed": _donor_owned(DonationStatus.CONFIRMED),
        "expired": _donor_owned(DonationStatus.EXPIRED),
    },
    Role.VOLUNTEER: {
        "available": _volunteer_available,
        "accepted": _volunteer_owned(DonationStatus.ACCEPTED),
        "picked": _volunteer_owned(DonationStatus.PICKED),
        "delivered": _volunteer_owned(DonationStatus.DELIVERED),
        "confirmed": _volunteer_owned(DonationStatus.CONFIRMED),
    },
}

# Both sides of the matching layer must describe the same lists
if any(list(LIST_FILTERS[role]) != list_names(role) for role in DASHBOARDS):
    raise RuntimeError("LIST_FILTERS and DASHBOARDS describe different dashboard lists")


# =============================================================================
# Queries
# =============================================================================

def list_filter(viewer: Viewer, name: str) -> ColumnElement[bool]:
    filters = LIST_FILTERS[viewer.role]
    if name not in filters:
        raise UnknownListError(f"No '{name}' list for role {viewer.role.value}")
    return filters[name](viewer)


def get_list(db: Session, viewer: Viewer, name: str) -> list[DonationRead]:
    """One dashboard list, newest activity first."""
    rows = db.execute(
        select(Donation)
        .where(list_filter(viewer, name))
        .order_by(Donation.updated_at.desc(), Donation.created_at.desc())
    ).scalars().all()
    return enrich(db, rows)


def get_dashboard(db: Session, viewer: Viewer) -> dict[str, list[DonationRead]]:
    """Every list on the viewer's dashboard, keyed by list name."""
    return {name: get_list(db, viewer, name) for name in list_names(viewer.role)}


def get_donation(db: Session, donation_id: UUID) -> Donation | None:
    return db.get(Donation, donation_id)


def enrich(db: Session, donations: Iterable[Donation]) -> list[DonationRead]:
    """
    Attach donor/organisation/volunteer summaries.

    Party rows are batch-loaded with a single users query.
    """
    donations = list(donations)
    user_ids: set[UUID] = set()
    for donation in donations:
        user_ids.add(donation.donor_id)
        if donation.organisation_id:
            user_ids.add(donation.organisation_id)
        if donation.volunteer_id:
            user_ids.add(donation.volunteer_id)

    parties: dict[UUID, PartySummary] = {}
    if user_ids:
        users = db.execute(select(User).where(User.id.in_(user_ids))).scalars().all()
        parties = {u.id: PartySummary.model_validate(u) for u in users}

    results = []
    for donation in donations:
        read = DonationRead.model_validate(donation)
        read.donor = parties.get(donation.donor_id)
        read.organisation = parties.get(donation.organisation_id) if donation.organisation_id else None
        read.volunteer = parties.get(donation.volunteer_id) if donation.volunteer_id else None
        results.append(read)
    return results


# =============================================================================
# Distance
# =============================================================================

def nearest_organisations(
    db: Session,
    origin: Coordinate,
    limit: int = 5,
    acceptance: AcceptanceType | None = None,
) -> list[NearestOrganisation]:
    """
    Closest recipient organisations to origin.

    Only recipients with an organisation type and stored coordinates are
    candidates.
    """
    query = select(User).where(
        User.role == Role.RECIPIENT.value,
        User.organisation_type.is_not(None),
        User.latitude.is_not(None),
        User.longitude.is_not(None),
    )
    if acceptance is not None:
        query = query.where(User.acceptance_type == acceptance.value)
    candidates = db.execute(query).scalars().all()

    ranked = nearest(
        origin,
        ((u, Coordinate(u.latitude, u.longitude)) for u in candidates),
        limit=limit,
    )
    return [
        NearestOrganisation(
            id=r.item.id,
            name=r.item.name,
            organisation_type=r.item.organisation_type,
            acceptance_type=r.item.acceptance_type,
            address=r.item.address,
            latitude=r.item.latitude,
            longitude=r.item.longitude,
            distance_km=round(r.distance_km, 3),
        )
        for r in ranked
    ]


def route_to(donation: Donation, origin: Coordinate) -> tuple[float, str]:
    """Distance (km) and driving-directions link from origin to a donation."""
    destination = Coordinate(donation.latitude, donation.longitude)
    return haversine_km(origin, destination), directions_url(origin, destination)
