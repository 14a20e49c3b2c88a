"""
In-process change feed for the donations table.

Services publish one DonationChange per committed insert/update/delete.
Each subscriber (an SSE stream or a WebSocket) owns a bounded asyncio
queue on its own event loop. publish() is synchronous and thread-safe so
it can be called from sync request handlers running in the threadpool.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from uuid import UUID

from sharebite.core.config import settings
from sharebite.core.structured_logging import build_log_context
from sharebite.db.enums import FeedEventType, Role
from sharebite.schemas.feed import DonationChange

logger = logging.getLogger(__name__)

FILTERABLE_COLUMNS = frozenset({"donor_id", "organisation_id", "volunteer_id"})

CLOSED = "closed"
LAGGED = "lagged"

# Column that ties a row to each role when a client asks for "mine" only
OWNER_COLUMNS: dict[Role, str] = {
    Role.DONOR: "donor_id",
    Role.RECIPIENT: "organisation_id",
    Role.VOLUNTEER: "volunteer_id",
}


@dataclass(frozen=True)
class FeedFilter:
    """Server-side owner filter, e.g. organisation_id == <viewer id>."""
    column: str
    value: UUID

    def __post_init__(self) -> None:
        if self.column not in FILTERABLE_COLUMNS:
            raise ValueError(f"Cannot filter feed on '{self.column}'")

    def matches(self, change: DonationChange) -> bool:
        # Deletes only carry the id, so they always pass
        if change.event_type == FeedEventType.DELETE:
            return True
        rows = [row for row in (change.new, change.old) if row is not None]
        return any(getattr(row, self.column) == self.value for row in rows)

    @classmethod
    def for_owner(cls, role: Role, user_id: UUID) -> "FeedFilter":
        return cls(OWNER_COLUMNS[role], user_id)


class Subscription:
    """One consumer's view of the feed."""

    def __init__(
        self,
        feed: "ChangeFeed",
        loop: asyncio.AbstractEventLoop,
        maxsize: int,
        feed_filter: FeedFilter | None = None,
        user_id: UUID | None = None,
    ):
        self._feed = feed
        self.loop = loop
        self.queue: asyncio.Queue[DonationChange | None] = asyncio.Queue(maxsize=maxsize)
        self.feed_filter = feed_filter
        self.user_id = user_id
        self.closed_reason: str | None = None

    def wants(self, change: DonationChange) -> bool:
        return self.feed_filter is None or self.feed_filter.matches(change)

    def _offer(self, change: DonationChange) -> None:
        """Runs on the subscriber's loop."""
        if self.closed_reason:
            return
        try:
            self.queue.put_nowait(change)
        except asyncio.QueueFull:
            logger.warning(
                "Feed subscriber lagged behind; closing",
                extra=build_log_context(user_id=self.user_id, outcome=LAGGED),
            )
            self._finish(LAGGED)

    def _finish(self, reason: str) -> None:
        if self.closed_reason:
            return
        self.closed_reason = reason
        self._feed.unsubscribe(self)
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    def close(self) -> None:
        """Stop receiving events. Call from the subscriber's loop."""
        self._finish(CLOSED)

    @property
    def lagged(self) -> bool:
        return self.closed_reason == LAGGED

    async def get(self) -> DonationChange | None:
        """Next change, or None once the subscription is closed."""
        if self.closed_reason and self.queue.empty():
            return None
        return await self.queue.get()

    def __aiter__(self):
        return self

    async def __anext__(self) -> DonationChange:
        change = await self.get()
        if change is None:
            raise StopAsyncIteration
        return change


class ChangeFeed:
    """Fan-out hub for donation changes."""

    def __init__(self, maxsize: int = 500):
        self._maxsize = maxsize
        self._subscribers: set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(
        self,
        *,
        feed_filter: FeedFilter | None = None,
        user_id: UUID | None = None,
    ) -> Subscription:
        """Register a subscriber bound to the running event loop."""
        loop = asyncio.get_running_loop()
        subscription = Subscription(self, loop, self._maxsize, feed_filter, user_id)
        with self._lock:
            self._subscribers.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(subscription)

    def publish(self, change: DonationChange) -> int:
        """
        Deliver a change to every matching subscriber.

        Returns the number of subscribers it was scheduled for.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscription in subscribers:
            if not subscription.wants(change):
                continue
            try:
                subscription.loop.call_soon_threadsafe(subscription._offer, change)
            except RuntimeError:
                # Subscriber's loop is gone
                self.unsubscribe(subscription)
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, user_id: UUID | None = None) -> int:
        with self._lock:
            if user_id is None:
                return len(self._subscribers)
            return sum(1 for s in self._subscribers if s.user_id == user_id)


# Singleton instance
change_feed = ChangeFeed(maxsize=settings.FEED_QUEUE_SIZE)
