"""Tests for client session state and listener fan-out."""

import uuid

import pytest

from sharebite.client.session import Session, SessionEvent, SessionStore
from sharebite.db.enums import AcceptanceType, Role
from sharebite.schemas.user import UserRead


@pytest.fixture
def session() -> Session:
    user = UserRead(
        id=uuid.uuid4(),
        email="kitchen@sharebite.org",
        name="Community Kitchen",
        role=Role.RECIPIENT,
        address="2 Market Road",
        acceptance_type=AcceptanceType.BOTH,
    )
    return Session(token="token", user=user, dashboard_path="/recipient")


def test_sign_in_and_out_notify_listeners(session):
    store = SessionStore()
    events = []
    store.add_listener(lambda event, current: events.append((event, current)))

    store.sign_in(session)
    assert store.current is session
    store.sign_out()
    assert store.current is None

    assert events == [(SessionEvent.SIGNED_IN, session), (SessionEvent.SIGNED_OUT, None)]


def test_sign_out_without_session_is_silent():
    store = SessionStore()
    events = []
    store.add_listener(lambda event, current: events.append(event))

    store.sign_out()

    assert events == []


def test_removed_listener_stops_receiving(session):
    store = SessionStore()
    events = []
    remove = store.add_listener(lambda event, current: events.append(event))

    remove()
    store.sign_in(session)

    assert events == []


def test_failing_listener_does_not_block_others(session, caplog):
    store = SessionStore()
    events = []

    def broken(event, current):
        raise RuntimeError("boom")

    store.add_listener(broken)
    store.add_listener(lambda event, current: events.append(event))

    store.sign_in(session)

    assert events == [SessionEvent.SIGNED_IN]
    assert "Session listener failed" in caplog.text


def test_viewer_carries_capability(session):
    viewer = session.viewer
    assert viewer.id == session.user.id
    assert viewer.role == Role.RECIPIENT
    assert viewer.capability == AcceptanceType.BOTH
