"""Enum definitions for application constants."""

from datetime import datetime, timezone
from enum import Enum


class Role(str, Enum):
    """
    User roles. Fixed at signup; there is no role-change path.

    - DONOR: posts donation offers
    - RECIPIENT: organisation that claims and receives donations
    - VOLUNTEER: optionally carries a claimed donation to its recipient
    """
    DONOR = "donor"
    RECIPIENT = "recipient"
    VOLUNTEER = "volunteer"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class AcceptanceType(str, Enum):
    """Which donation categories a recipient organisation can take."""
    EDIBLE = "edible"
    NON_EDIBLE = "non-edible"
    BOTH = "both"

    @property
    def accepts_edible(self) -> bool:
        return self in (AcceptanceType.EDIBLE, AcceptanceType.BOTH)

    @property
    def accepts_non_edible(self) -> bool:
        return self in (AcceptanceType.NON_EDIBLE, AcceptanceType.BOTH)

    def accepted_categories(self) -> list["DonationAcceptance"]:
        """Donation categories visible in this recipient's posted list."""
        categories = []
        if self.accepts_edible:
            categories.append(DonationAcceptance.EDIBLE)
        if self.accepts_non_edible:
            categories.append(DonationAcceptance.NON_EDIBLE)
        return categories


class DonationAcceptance(str, Enum):
    """Category of a single donation."""
    EDIBLE = "edible"
    NON_EDIBLE = "non-edible"


class OrganisationType(str, Enum):
    NGO = "ngo"
    FOOD_BANK = "food_bank"
    ORPHANAGE = "orphanage"
    BIOGAS = "biogas"
    FARMERS = "farmers"
    OTHERS = "others"


ORGANISATION_TYPES_BY_ACCEPTANCE: dict[AcceptanceType, set[OrganisationType]] = {
    AcceptanceType.EDIBLE: {
        OrganisationType.NGO,
        OrganisationType.FOOD_BANK,
        OrganisationType.ORPHANAGE,
        OrganisationType.OTHERS,
    },
    AcceptanceType.NON_EDIBLE: {
        OrganisationType.BIOGAS,
        OrganisationType.FARMERS,
        OrganisationType.OTHERS,
    },
    AcceptanceType.BOTH: set(OrganisationType),
}


class QuantityUnit(str, Enum):
    """Canonical storage units. Aliases are normalized in utils.units."""
    KG = "kg"
    LITERS = "liters"
    PACKS = "packs"
    PLATES = "plates"
    ITEMS = "items"


class DonationStatus(str, Enum):
    """
    Donation lifecycle.

    posted → claimed → [accepted →] picked → delivered → confirmed

    Side states:
        diverted: edible donation moved to the non-edible queue (claimable
                  by non-edible recipients)
        expired:  posted donation whose expiry passed before any claim
    """
    POSTED = "posted"
    DIVERTED = "diverted"
    CLAIMED = "claimed"
    ACCEPTED = "accepted"
    PICKED = "picked"
    DELIVERED = "delivered"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"

    @classmethod
    def claimable(cls) -> list["DonationStatus"]:
        return [cls.POSTED, cls.DIVERTED]

    @classmethod
    def in_progress(cls) -> list["DonationStatus"]:
        """Claimed but not yet delivered."""
        return [cls.CLAIMED, cls.ACCEPTED, cls.PICKED]


# Forward-only transition graph. Every conditional update in the lifecycle
# service admits only a predecessor listed here.
ALLOWED_TRANSITIONS: dict[DonationStatus, frozenset[DonationStatus]] = {
    DonationStatus.POSTED: frozenset(
        {DonationStatus.CLAIMED, DonationStatus.DIVERTED, DonationStatus.EXPIRED}
    ),
    DonationStatus.DIVERTED: frozenset({DonationStatus.CLAIMED}),
    DonationStatus.CLAIMED: frozenset({DonationStatus.ACCEPTED, DonationStatus.PICKED}),
    DonationStatus.ACCEPTED: frozenset({DonationStatus.PICKED}),
    DonationStatus.PICKED: frozenset({DonationStatus.DELIVERED}),
    DonationStatus.DELIVERED: frozenset({DonationStatus.CONFIRMED}),
    DonationStatus.CONFIRMED: frozenset(),
    DonationStatus.EXPIRED: frozenset(),
}


def can_transition(current: DonationStatus, target: DonationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class FeedEventType(str, Enum):
    """Row-level change kinds published on the donations feed."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class TransitionFailure(str, Enum):
    """Why a conditional transition affected zero rows."""
    NOT_FOUND = "not_found"
    NOT_PERMITTED = "not_permitted"
    CONFLICT = "conflict"


# Non-edible donations never expire
NEVER_EXPIRES = datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

ROLE_DASHBOARD_PATHS: dict[Role, str] = {
    Role.DONOR: "/donor",
    Role.RECIPIENT: "/recipient",
    Role.VOLUNTEER: "/volunteer",
}
