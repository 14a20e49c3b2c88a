"""
Background worker for the donation lifecycle sweeps.

Usage:
    python -m sharebite.worker

Every SWEEP_INTERVAL_SECONDS the worker expires overdue donations and,
when a diversion window is configured, diverts edible donations close to
expiry. With INTERNAL_API_URL set, sweeps run through the API's internal
endpoints so that process's feed subscribers see the changes; otherwise
they run directly against the database.
"""

import asyncio
import logging

import httpx

from sharebite.core.config import settings
from sharebite.core.structured_logging import build_log_context, configure_logging
from sharebite.db.session import SessionLocal
from sharebite.services import lifecycle_service

configure_logging()
logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30


def run_sweeps_locally() -> dict[str, int]:
    """Run both sweeps in this process. Returns rows changed per sweep."""
    with SessionLocal() as db:
        expired = lifecycle_service.expire_overdue(db)
        diverted = lifecycle_service.divert_near_expiry(
            db, window_minutes=settings.DIVERSION_WINDOW_MINUTES
        )
    return {"expire": len(expired), "divert": len(diverted)}


async def run_sweeps_remotely(client: httpx.AsyncClient) -> dict[str, int]:
    """Trigger both sweeps through the API's internal endpoints."""
    counts = {}
    for name, path in (
        ("expire", "/internal/scheduled/expire-donations"),
        ("divert", "/internal/scheduled/divert-donations"),
    ):
        response = await client.post(path, headers={"X-Internal-Secret": settings.INTERNAL_SECRET})
        response.raise_for_status()
        counts[name] = response.json()["updated"]
    return counts


async def worker_loop() -> None:
    """Main worker loop - runs sweeps on a fixed interval."""
    remote = bool(settings.INTERNAL_API_URL)
    logger.info(
        "Worker starting (interval: %ss, diversion window: %s min, mode: %s)",
        settings.SWEEP_INTERVAL_SECONDS,
        settings.DIVERSION_WINDOW_MINUTES,
        "api" if remote else "local",
    )
    if not remote:
        logger.warning(
            "INTERNAL_API_URL is not set; sweep changes will not reach live dashboards"
        )

    async with httpx.AsyncClient(
        base_url=settings.INTERNAL_API_URL or "http://localhost",
        timeout=REQUEST_TIMEOUT_SECONDS,
    ) as client:
        while True:
            try:
                if remote:
                    counts = await run_sweeps_remotely(client)
                else:
                    counts = await asyncio.to_thread(run_sweeps_locally)
                if any(counts.values()):
                    logger.info(
                        "Sweeps changed %s",
                        counts,
                        extra=build_log_context(action="sweep", outcome="changed"),
                    )
            except (httpx.HTTPError, KeyError) as exc:
                logger.warning(
                    "Sweep request failed: %s",
                    exc,
                    extra=build_log_context(action="sweep", outcome="failed"),
                )
            except Exception:
                logger.exception(
                    "Sweep failed",
                    extra=build_log_context(action="sweep", outcome="failed"),
                )

            await asyncio.sleep(settings.SWEEP_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
