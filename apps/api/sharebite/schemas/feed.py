"""Change feed event schemas."""

from uuid import UUID

from pydantic import BaseModel

from sharebite.db.enums import FeedEventType
from sharebite.schemas.donation import DonationRead


class DonationChange(BaseModel):
    """
    One row-level change on the donations table.

    insert: new set, old None
    update: new set, old holds the previous row
    delete: new and old None; only donation_id is known
    """
    event_type: FeedEventType
    donation_id: UUID
    version: int | None = None
    new: DonationRead | None = None
    old: DonationRead | None = None
