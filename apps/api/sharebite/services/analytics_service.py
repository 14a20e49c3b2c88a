"""Donor contribution analytics.

Monthly aggregates over a donor's own donations, including months with
no activity so charts have a continuous axis.
"""

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sharebite.db.enums import DonationStatus
from sharebite.db.models import Donation
from sharebite.schemas.analytics import ContributionsResponse, MonthlyContribution
from sharebite.utils.datetime_parsing import ensure_utc

DELIVERED_STATUSES = {DonationStatus.DELIVERED.value, DonationStatus.CONFIRMED.value}


def _month_key(value: datetime) -> str:
    return value.strftime("%Y-%m")


def _month_starts(months: int, now: datetime) -> list[datetime]:
    """First day of each of the last `months` months, oldest first."""
    year, month = now.year, now.month
    starts = []
    for _ in range(months):
        starts.append(datetime(year, month, 1, tzinfo=timezone.utc))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def get_contributions(
    db: Session,
    donor_id: UUID,
    *,
    months: int = 6,
    now: datetime | None = None,
) -> ContributionsResponse:
    """Donations posted and delivered per month, with quantity per unit."""
    now = ensure_utc(now or datetime.now(timezone.utc))
    starts = _month_starts(max(months, 1), now)

    rows = db.execute(
        select(Donation.created_at, Donation.status, Donation.quantity, Donation.quantity_unit)
        .where(Donation.donor_id == donor_id, Donation.created_at >= starts[0])
    ).all()

    counts: dict[str, int] = defaultdict(int)
    delivered: dict[str, int] = defaultdict(int)
    quantities: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
    for created_at, status, quantity, unit in rows:
        key = _month_key(ensure_utc(created_at))
        counts[key] += 1
        if status in DELIVERED_STATUSES:
            delivered[key] += 1
        quantities[key][unit] += Decimal(quantity)

    result = [
        MonthlyContribution(
            month=_month_key(start),
            donations=counts[_month_key(start)],
            delivered=delivered[_month_key(start)],
            quantities=dict(quantities[_month_key(start)]),
        )
        for start in starts
    ]
    return ContributionsResponse(
        months=result,
        total_donations=sum(m.donations for m in result),
        total_delivered=sum(m.delivered for m in result),
    )
