"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any
from uuid import UUID

from sharebite.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging() -> None:
    """Configure root logging once per process (API and worker)."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    donation_id: UUID | str | None = None,
    action: str | None = None,
    outcome: str | None = None,
    route: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (ids only, never names or emails)."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if donation_id:
        context["donation_id"] = str(donation_id)
    if action:
        context["action"] = action
    if outcome:
        context["outcome"] = outcome
    if route:
        context["route"] = route
    return context
