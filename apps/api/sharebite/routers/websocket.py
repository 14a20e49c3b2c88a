"""
WebSocket transport for the donations change feed.

Provides a WebSocket endpoint that:
1. Authenticates users via JWT query param or session cookie
2. Streams donation changes as {"type": "change", "data": {...}}
3. Answers "ping" with "pong" and sends {"type": "resync"} when the
   connection falls behind the feed
"""

import asyncio
import json
import logging
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from sharebite.core.change_feed import FeedFilter, Subscription, change_feed
from sharebite.core.deps import COOKIE_NAME
from sharebite.core.security import decode_session_token
from sharebite.core.structured_logging import build_log_context
from sharebite.db.enums import Role
from sharebite.db.models import User
from sharebite.db.session import SessionLocal

router = APIRouter(prefix="/ws", tags=["WebSocket"])
logger = logging.getLogger(__name__)


def _load_user(token: str) -> tuple[UUID, Role] | None:
    """Resolve a session token to (user_id, role); None if invalid or revoked."""
    try:
        payload = decode_session_token(token)
        user_id = UUID(str(payload["sub"]))
    except Exception:
        return None
    with SessionLocal() as db:
        user = db.get(User, user_id)
        if not user or user.token_version != payload.get("token_version"):
            return None
        if not Role.has_value(user.role):
            return None
        return user.id, Role(user.role)


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    async for change in subscription:
        await websocket.send_text(
            json.dumps({"type": "change", "data": change.model_dump(mode="json")})
        )
    if subscription.lagged:
        await websocket.send_text(
            json.dumps({"type": "resync", "data": {"reason": subscription.closed_reason}})
        )


@router.websocket("/donations")
async def websocket_donations(
    websocket: WebSocket,
    token: str | None = Query(None),
    scope: str = Query("all"),
):
    """
    WebSocket endpoint for live donation changes.

    Authenticates via:
    1. JWT token in query parameter (?token=...)
    2. Or session cookie (for browser clients)
    """
    identity = None
    if token:
        identity = await run_in_threadpool(_load_user, token)
        if identity is None:
            await websocket.close(code=4001, reason="Invalid token")
            return

    if identity is None:
        cookie = websocket.cookies.get(COOKIE_NAME)
        if cookie:
            identity = await run_in_threadpool(_load_user, cookie)

    if identity is None:
        await websocket.close(code=4001, reason="Authentication required")
        return

    user_id, role = identity
    feed_filter = FeedFilter.for_owner(role, user_id) if scope == "mine" else None

    await websocket.accept()
    subscription = change_feed.subscribe(feed_filter=feed_filter, user_id=user_id)
    pump = asyncio.create_task(_pump(websocket, subscription))
    logger.info(
        "Feed socket opened",
        extra=build_log_context(user_id=user_id, action="subscribe", route="ws"),
    )

    try:
        # Keep connection alive, handle incoming messages (heartbeat/pings)
        while True:
            receive = asyncio.ensure_future(websocket.receive_text())
            done, _ = await asyncio.wait({receive, pump}, return_when=asyncio.FIRST_COMPLETED)
            if pump in done:
                receive.cancel()
                pump.result()
                await websocket.close(code=4008, reason="Resync required")
                break
            try:
                data = receive.result()
            except WebSocketDisconnect:
                break
            if data == "ping":
                await websocket.send_text("pong")
    finally:
        subscription.close()
        if not pump.done():
            pump.cancel()
        logger.info(
            "Feed socket closed",
            extra=build_log_context(
                user_id=user_id, action="unsubscribe", outcome=subscription.closed_reason
            ),
        )
