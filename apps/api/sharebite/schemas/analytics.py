"""Pydantic schemas for donor analytics."""

from decimal import Decimal

from pydantic import BaseModel


class MonthlyContribution(BaseModel):
    """Donations posted in one calendar month (YYYY-MM)."""
    month: str
    donations: int
    delivered: int
    quantities: dict[str, Decimal]


class ContributionsResponse(BaseModel):
    months: list[MonthlyContribution]
    total_donations: int
    total_delivered: int
