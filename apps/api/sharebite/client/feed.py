"""Consume the donations change feed over Server-Sent Events."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from pydantic import ValidationError

from sharebite.client.errors import NotAuthenticated, ServiceError
from sharebite.db.enums import FeedEventType
from sharebite.schemas.feed import DonationChange

if TYPE_CHECKING:
    from sharebite.client.api import ShareBiteClient

logger = logging.getLogger(__name__)

RESYNC_EVENT = "resync"
_CHANGE_EVENTS = {e.value for e in FeedEventType}


@dataclass
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: str | None = None


@dataclass(frozen=True)
class Resync:
    """The stream fell behind; local state must be refetched."""
    reason: str | None = None


FeedMessage = Union[DonationChange, Resync]


@dataclass
class SSEDecoder:
    """Incremental line decoder for text/event-stream bodies."""
    _event: str | None = None
    _data: list[str] = field(default_factory=list)
    _id: str | None = None

    def feed(self, line: str) -> ServerSentEvent | None:
        """Consume one line (without its newline); return an event on dispatch."""
        line = line.rstrip("\r")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._id = value
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._data and self._event is None:
            return None
        sse = ServerSentEvent(event=self._event or "message", data="\n".join(self._data), id=self._id)
        self._event, self._data, self._id = None, [], None
        return sse


def to_message(sse: ServerSentEvent) -> FeedMessage | None:
    """Typed feed message for an SSE event; None for anything unrecognised."""
    if sse.event == RESYNC_EVENT:
        try:
            reason = json.loads(sse.data).get("reason") if sse.data else None
        except (ValueError, AttributeError):
            reason = None
        return Resync(reason=reason)
    if sse.event not in _CHANGE_EVENTS:
        return None
    try:
        return DonationChange.model_validate_json(sse.data)
    except ValidationError:
        logger.warning("Dropping malformed feed event %s", sse.id)
        return None


def parse_lines(lines: Iterable[str]) -> Iterator[FeedMessage]:
    decoder = SSEDecoder()
    for line in lines:
        sse = decoder.feed(line)
        if sse is not None:
            message = to_message(sse)
            if message is not None:
                yield message


async def aparse_lines(lines: AsyncIterable[str]) -> AsyncIterator[FeedMessage]:
    decoder = SSEDecoder()
    async for line in lines:
        sse = decoder.feed(line)
        if sse is not None:
            message = to_message(sse)
            if message is not None:
                yield message


async def stream_changes(client: "ShareBiteClient", *, scope: str = "all") -> AsyncIterator[FeedMessage]:
    """
    Open the SSE feed and yield typed messages until the server closes it.

    A Resync is always the last message of a stream.
    """
    async with client.http.stream(
        "GET",
        "/realtime/donations",
        params={"scope": scope},
        headers=client.auth_headers(),
        timeout=None,
    ) as response:
        if response.status_code == 401:
            raise NotAuthenticated("Sign in to follow donation updates")
        if not response.is_success:
            raise ServiceError("Could not open the donation feed", status_code=response.status_code)
        async for message in aparse_lines(response.aiter_lines()):
            yield message
