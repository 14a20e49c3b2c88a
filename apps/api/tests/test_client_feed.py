"""Tests for decoding the SSE change feed on the client."""

import uuid

from sharebite.client.feed import Resync, SSEDecoder, parse_lines
from sharebite.db.enums import FeedEventType
from sharebite.schemas.feed import DonationChange
from sharebite.utils.sse import format_sse, format_sse_comment


def as_lines(*chunks: str) -> list[str]:
    return "".join(chunks).split("\n")


def test_decodes_change_events(make_read):
    row = make_read(donor_id=uuid.uuid4())
    change = DonationChange(
        event_type=FeedEventType.INSERT, donation_id=row.id, version=1, new=row
    )
    body = as_lines(
        format_sse_comment("connected"),
        format_sse("insert", change.model_dump(mode="json"), event_id=f"{row.id}:1"),
        format_sse_comment(),
    )

    messages = list(parse_lines(body))

    assert len(messages) == 1
    assert isinstance(messages[0], DonationChange)
    assert messages[0].new.id == row.id
    assert messages[0].new.quantity == row.quantity


def test_resync_event():
    messages = list(parse_lines(as_lines(format_sse("resync", {"reason": "lagged"}))))
    assert messages == [Resync(reason="lagged")]


def test_unknown_and_malformed_events_are_dropped():
    body = as_lines(
        format_sse("heartbeat", {"ok": True}),
        "event: update\ndata: {not json}\n\n",
    )
    assert list(parse_lines(body)) == []


def test_multiline_data_and_crlf():
    decoder = SSEDecoder()
    events = [
        decoder.feed(line)
        for line in ["id: 7\r", "event: custom", "data: first", "data: second", ""]
    ]
    sse = events[-1]

    assert events[:-1] == [None, None, None, None]
    assert sse.event == "custom"
    assert sse.data == "first\nsecond"
    assert sse.id == "7"


def test_blank_lines_alone_dispatch_nothing():
    decoder = SSEDecoder()
    assert decoder.feed("") is None
    assert decoder.feed(": ping") is None
    assert decoder.feed("") is None
