"""Datetime parsing helpers for donation expiry input."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

# Expiry presets offered by the donation form
EXPIRY_PRESETS: dict[str, timedelta] = {
    "1 hour": timedelta(hours=1),
    "2 hours": timedelta(hours=2),
    "3 hours": timedelta(hours=3),
}
CUSTOM_EXPIRY = "custom"

_DURATION_RE = re.compile(
    r"^(?P<amount>\d+(?:\.\d+)?)\s*(?P<unit>minutes?|mins?|hours?|hrs?|h|days?|d|weeks?)$",
    re.IGNORECASE,
)

_UNIT_SECONDS = {
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
}


class ExpiryParseError(ValueError):
    """Expiry input could not be turned into a point in time."""


class ExpiryOutOfRange(ExpiryParseError):
    """Expiry lies beyond the representable calendar."""


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_duration(raw_value: str) -> timedelta:
    """
    Parse free-text durations such as "5 hours", "1 day", "30 minutes"
    or "1.5 hrs".
    """
    value = raw_value.strip()
    match = _DURATION_RE.match(value)
    if not match:
        raise ExpiryParseError(f"Unrecognised expiry '{raw_value}'")
    amount = float(match.group("amount"))
    if amount <= 0:
        raise ExpiryParseError("Expiry must be in the future")
    unit = match.group("unit").lower()
    # Units are keyed by their first letter
    seconds = _UNIT_SECONDS[unit[0]]
    try:
        return timedelta(seconds=amount * seconds)
    except OverflowError:
        raise ExpiryOutOfRange("Expiry is too far in the future")


def resolve_expiry(
    expiry: str,
    custom_expiry: str | None = None,
    *,
    now: datetime | None = None,
) -> datetime:
    """
    Turn form expiry input into an absolute UTC timestamp.

    Accepts a preset ("1 hour", "2 hours", "3 hours"), or "custom" together
    with a duration string or an ISO-8601 timestamp.
    """
    now = now or datetime.now(timezone.utc)
    choice = (expiry or "").strip().lower()
    if not choice:
        raise ExpiryParseError("Expiry is required")

    if choice in EXPIRY_PRESETS:
        return now + EXPIRY_PRESETS[choice]

    raw = custom_expiry if choice == CUSTOM_EXPIRY else expiry
    if not raw or not raw.strip():
        raise ExpiryParseError("Custom expiry is required")

    try:
        delta = parse_duration(raw)
    except ExpiryOutOfRange:
        raise
    except ExpiryParseError:
        delta = None
    if delta is not None:
        try:
            return now + delta
        except OverflowError:
            raise ExpiryOutOfRange("Expiry is too far in the future")

    try:
        parsed = datetime.fromisoformat(raw.strip())
    except ValueError:
        raise ExpiryParseError(f"Unrecognised expiry '{raw}'")
    try:
        parsed = ensure_utc(parsed)
    except OverflowError:
        raise ExpiryOutOfRange("Expiry is too far in the future")
    if parsed <= now:
        raise ExpiryParseError("Expiry must be in the future")
    return parsed
