"""
Dashboard list definitions by role.

Each role sees an ordered set of disjoint lists. A list is a pure predicate
over the current state of a donation and the viewer. The query service
builds the SQL equivalent for each list name, and the client reconciler
applies these predicates to live feed events, so both sides agree on
which list (if any) a row belongs to.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol
from uuid import UUID

from sharebite.db.enums import AcceptanceType, DonationAcceptance, DonationStatus, Role


class DonationState(Protocol):
    status: object
    acceptance: object
    donor_id: UUID
    organisation_id: UUID | None
    volunteer_id: UUID | None
    volunteer_needed: bool


@dataclass(frozen=True)
class Viewer:
    """Who is looking: id, role and (for recipients) capability."""
    id: UUID
    role: Role
    acceptance_type: AcceptanceType | None = None

    @property
    def capability(self) -> AcceptanceType:
        return self.acceptance_type or AcceptanceType.EDIBLE


@dataclass(frozen=True)
class ListSpec:
    name: str
    matches: Callable[[DonationState, Viewer], bool]


def _status(donation: DonationState) -> DonationStatus:
    return DonationStatus(getattr(donation.status, "value", donation.status))


def _acceptance(donation: DonationState) -> DonationAcceptance:
    return DonationAcceptance(getattr(donation.acceptance, "value", donation.acceptance))


def can_claim_category(donation: DonationState, viewer: Viewer) -> bool:
    """
    Whether a recipient's acceptance capability covers this donation.

    Posted rows match on their own category; diverted rows sit in the
    non-edible queue whatever their original category.
    """
    status = _status(donation)
    if status == DonationStatus.DIVERTED:
        return viewer.capability.accepts_non_edible
    return _acceptance(donation) in viewer.capability.accepted_categories()


def _has_status(*statuses: DonationStatus) -> Callable[[DonationState], bool]:
    wanted = frozenset(statuses)
    return lambda donation: _status(donation) in wanted


def _owned_by_organisation(*statuses: DonationStatus) -> Callable[[DonationState, Viewer], bool]:
    in_status = _has_status(*statuses)
    return lambda d, v: d.organisation_id == v.id and in_status(d)


def _owned_by_donor(*statuses: DonationStatus) -> Callable[[DonationState, Viewer], bool]:
    in_status = _has_status(*statuses)
    return lambda d, v: d.donor_id == v.id and in_status(d)


def _owned_by_volunteer(*statuses: DonationStatus) -> Callable[[DonationState, Viewer], bool]:
    in_status = _has_status(*statuses)
    return lambda d, v: d.volunteer_id == v.id and in_status(d)


def _recipient_posted(donation: DonationState, viewer: Viewer) -> bool:
    return _status(donation) == DonationStatus.POSTED and can_claim_category(donation, viewer)


def _recipient_diverted(donation: DonationState, viewer: Viewer) -> bool:
    return _status(donation) == DonationStatus.DIVERTED and viewer.capability.accepts_non_edible


def _volunteer_available(donation: DonationState, viewer: Viewer) -> bool:
    return (
        _status(donation) == DonationStatus.CLAIMED
        and bool(donation.volunteer_needed)
        and donation.volunteer_id is None
    )


DASHBOARDS: dict[Role, tuple[ListSpec, ...]] = {
    Role.RECIPIENT: (
        ListSpec("posted", _recipient_posted),
        ListSpec("diverted", _recipient_diverted),
        ListSpec("claimed", _owned_by_organisation(DonationStatus.CLAIMED)),
        ListSpec("accepted", _owned_by_organisation(DonationStatus.ACCEPTED)),
        ListSpec("picked", _owned_by_organisation(DonationStatus.PICKED)),
        ListSpec("delivered", _owned_by_organisation(DonationStatus.DELIVERED)),
        ListSpec("confirmed", _owned_by_organisation(DonationStatus.CONFIRMED)),
    ),
    Role.DONOR: (
        ListSpec("unclaimed", _owned_by_donor(DonationStatus.POSTED)),
        ListSpec("diverted", _owned_by_donor(DonationStatus.DIVERTED)),
        ListSpec("in_progress", _owned_by_donor(*DonationStatus.in_progress())),
        ListSpec("delivered", _owned_by_donor(DonationStatus.DELIVERED)),
        ListSpec("confirmed", _owned_by_donor(DonationStatus.CONFIRMED)),
        ListSpec("expired", _owned_by_donor(DonationStatus.EXPIRED)),
    ),
    Role.VOLUNTEER: (
        ListSpec("available", _volunteer_available),
        ListSpec("accepted", _owned_by_volunteer(DonationStatus.ACCEPTED)),
        ListSpec("picked", _owned_by_volunteer(DonationStatus.PICKED)),
        ListSpec("delivered", _owned_by_volunteer(DonationStatus.DELIVERED)),
        ListSpec("confirmed", _owned_by_volunteer(DonationStatus.CONFIRMED)),
    ),
}


def list_names(role: Role) -> list[str]:
    return [spec.name for spec in DASHBOARDS[role]]


def classify(donation: DonationState, viewer: Viewer) -> str | None:
    """Name of the list this donation belongs to for viewer, or None."""
    for spec in DASHBOARDS[viewer.role]:
        if spec.matches(donation, viewer):
            return spec.name
    return None
