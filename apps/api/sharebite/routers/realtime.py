"""Server-Sent Events transport for the donations change feed."""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from sharebite.core.change_feed import FeedFilter, change_feed
from sharebite.core.config import settings
from sharebite.core.deps import get_current_session
from sharebite.core.structured_logging import build_log_context
from sharebite.schemas.auth import UserSession
from sharebite.utils.sse import STREAM_HEADERS, format_sse, format_sse_comment

router = APIRouter()
logger = logging.getLogger(__name__)

RESYNC_EVENT = "resync"


@router.get("/donations")
async def stream_donations(
    request: Request,
    scope: Literal["all", "mine"] = Query("all"),
    session: UserSession = Depends(get_current_session),
) -> StreamingResponse:
    """
    Stream donation changes as SSE.

    Events are named after the change kind (insert/update/delete) and carry
    {event_type, donation_id, version, new, old}. `scope=mine` limits the
    stream to rows the caller owns. A `resync` event means the stream fell
    behind and the client must refetch its dashboard.
    """
    feed_filter = FeedFilter.for_owner(session.role, session.user_id) if scope == "mine" else None
    user_id = session.user_id

    async def event_generator() -> AsyncIterator[str]:
        subscription = change_feed.subscribe(feed_filter=feed_filter, user_id=user_id)
        logger.info(
            "Feed stream opened",
            extra=build_log_context(user_id=user_id, action="subscribe", route="sse"),
        )
        try:
            yield format_sse_comment("connected")
            while True:
                if await request.is_disconnected():
                    break
                try:
                    change = await asyncio.wait_for(
                        subscription.get(), timeout=settings.FEED_PING_SECONDS
                    )
                except asyncio.TimeoutError:
                    yield format_sse_comment()
                    continue
                if change is None:
                    if subscription.lagged:
                        yield format_sse(RESYNC_EVENT, {"reason": subscription.closed_reason})
                    break
                yield format_sse(
                    change.event_type.value,
                    change.model_dump(mode="json"),
                    event_id=f"{change.donation_id}:{change.version or 0}",
                )
        finally:
            subscription.close()
            logger.info(
                "Feed stream closed",
                extra=build_log_context(
                    user_id=user_id, action="unsubscribe", outcome=subscription.closed_reason
                ),
            )

    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=STREAM_HEADERS)
