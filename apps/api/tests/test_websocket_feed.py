"""Tests for the WebSocket change feed transport."""

import asyncio
import json
import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from sharebite.core.change_feed import ChangeFeed
from sharebite.core.security import create_session_token
from sharebite.core.visibility import Viewer
from sharebite.db.enums import AcceptanceType, FeedEventType, Role
from sharebite.main import app
from sharebite.routers.websocket import _pump
from sharebite.schemas.feed import DonationChange
from sharebite.services import auth_service, lifecycle_service


class FakeWebSocket:
    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(data)


def token_for(user) -> str:
    return create_session_token(user.id, user.role, user.token_version)


def test_streams_changes_after_subscribe(db, donor, edible_org, make_donation):
    donation = make_donation(donor)
    org = Viewer(id=edible_org.id, role=Role.RECIPIENT, acceptance_type=AcceptanceType.EDIBLE)

    with TestClient(app) as client:
        with client.websocket_connect(f"/ws/donations?token={token_for(edible_org)}") as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"

            lifecycle_service.claim(db, donation.id, org)

            message = ws.receive_json()
            assert message["type"] == "change"
            assert message["data"]["event_type"] == "update"
            assert message["data"]["donation_id"] == str(donation.id)
            assert message["data"]["new"]["status"] == "claimed"
            assert message["data"]["old"]["status"] == "posted"


def test_mine_scope_filters_other_owners(db, donor, make_user, make_donation):
    other = make_user(Role.DONOR)

    with TestClient(app) as client:
        url = f"/ws/donations?token={token_for(donor)}&scope=mine"
        with client.websocket_connect(url) as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"

            make_donation(other, food_type="Not mine")
            mine = make_donation(donor, food_type="Mine")

            message = ws.receive_json()
            assert message["data"]["event_type"] == "insert"
            assert message["data"]["donation_id"] == str(mine.id)


def test_cookie_authentication(db, volunteer):
    from sharebite.core.deps import COOKIE_NAME

    with TestClient(app, cookies={COOKIE_NAME: token_for(volunteer)}) as client:
        with client.websocket_connect("/ws/donations") as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"


def test_rejects_bad_or_revoked_tokens(db, donor):
    token = token_for(donor)
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect) as bad:
            with client.websocket_connect("/ws/donations?token=not-a-token"):
                pass
        assert bad.value.code == 4001

        with pytest.raises(WebSocketDisconnect) as missing:
            with client.websocket_connect("/ws/donations"):
                pass
        assert missing.value.code == 4001

        auth_service.revoke_all_sessions(db, donor.id)
        with pytest.raises(WebSocketDisconnect) as revoked:
            with client.websocket_connect(f"/ws/donations?token={token}"):
                pass
        assert revoked.value.code == 4001


@pytest.mark.asyncio
async def test_lagged_connection_gets_resync():
    feed = ChangeFeed(maxsize=1)
    subscription = feed.subscribe()
    for _ in range(2):
        feed.publish(DonationChange(event_type=FeedEventType.DELETE, donation_id=uuid.uuid4()))
    await asyncio.sleep(0)

    ws = FakeWebSocket()
    await asyncio.wait_for(_pump(ws, subscription), 1)

    assert [json.loads(m)["type"] for m in ws.sent] == ["resync"]
    assert json.loads(ws.sent[0])["data"] == {"reason": "lagged"}
