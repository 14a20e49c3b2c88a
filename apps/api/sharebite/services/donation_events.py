"""Donation change events.

Centralizes publishing to the change feed so lifecycle code only has to
say what happened to which row after its transaction committed.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from sharebite.db.enums import FeedEventType
from sharebite.db.models import Donation
from sharebite.schemas.donation import DonationRead
from sharebite.schemas.feed import DonationChange

logger = logging.getLogger(__name__)


def _publish(change: DonationChange) -> int:
    from sharebite.core.change_feed import change_feed

    delivered = change_feed.publish(change)
    logger.debug(
        "donation_change_published",
        extra={
            "donation_id": str(change.donation_id),
            "event_type": change.event_type.value,
            "subscribers": delivered,
        },
    )
    return delivered


def snapshot(db: Session, donation: Donation) -> DonationRead:
    """Enriched read model for a donation as it is now."""
    from sharebite.services import donation_query_service

    return donation_query_service.enrich(db, [donation])[0]


def snapshot_many(db: Session, donations: list[Donation]) -> list[DonationRead]:
    from sharebite.services import donation_query_service

    return donation_query_service.enrich(db, donations)


def donation_inserted(db: Session, donation: Donation) -> DonationRead:
    new = snapshot(db, donation)
    _publish(
        DonationChange(
            event_type=FeedEventType.INSERT,
            donation_id=donation.id,
            version=new.version,
            new=new,
        )
    )
    return new


def donation_updated(db: Session, donation: Donation, old: DonationRead | None) -> DonationRead:
    new = snapshot(db, donation)
    _publish(
        DonationChange(
            event_type=FeedEventType.UPDATE,
            donation_id=donation.id,
            version=new.version,
            new=new,
            old=old,
        )
    )
    return new


def donation_deleted(donation_id: UUID) -> None:
    _publish(DonationChange(event_type=FeedEventType.DELETE, donation_id=donation_id))
