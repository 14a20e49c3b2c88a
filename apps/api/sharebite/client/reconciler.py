"""
Live dashboard state for one viewer.

A DashboardReconciler keeps the viewer's dashboard lists in memory from a
snapshot plus the change feed. Every input (snapshot result, change,
resync) goes through one inbox queue and is applied in arrival order:

- Changes that arrive before the first snapshot are buffered and replayed
  on top of it.
- Each row carries a version; anything not newer than what was already
  applied is dropped. Deletes leave a tombstone so a late update cannot
  bring the row back.
- Applying a row removes its id from every list, then prepends it to the
  one list its current state belongs to (if any). An id is therefore never
  in two lists at once.
- A failed resync fetch is recorded in last_error and logged; the
  reconciler stays unloaded until a later snapshot arrives. The buffer of
  changes held while unloaded is bounded; on overflow it is dropped and a
  fresh snapshot is requested.
- close() is synchronous; after it returns nothing else is applied.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

from sharebite.client.feed import FeedMessage, Resync
from sharebite.core.visibility import Viewer, classify, list_names
from sharebite.db.enums import FeedEventType
from sharebite.schemas.donation import DonationRead
from sharebite.schemas.feed import DonationChange

logger = logging.getLogger(__name__)

Lists = dict[str, list[DonationRead]]
SnapshotFetcher = Callable[[], Awaitable[Lists]]

# Changes held while waiting for a snapshot
MAX_PENDING = 1000


@dataclass(frozen=True)
class _Snapshot:
    lists: Lists


@dataclass(frozen=True)
class _SnapshotFailed:
    error: BaseException


_STOP = object()


class DashboardReconciler:
    def __init__(
        self,
        viewer: Viewer,
        fetch_snapshot: SnapshotFetcher | None = None,
        *,
        max_pending: int = MAX_PENDING,
    ):
        self.viewer = viewer
        self._fetch_snapshot = fetch_snapshot
        self._lists: Lists = {name: [] for name in list_names(viewer.role)}
        self._versions: dict[UUID, int] = {}
        self._tombstones: set[UUID] = set()
        self._pending: list[DonationChange] = []
        self._max_pending = max_pending
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()
        self._loaded = False
        self._closed = False
        self.last_error: BaseException | None = None

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def lists(self) -> Lists:
        return {name: list(rows) for name, rows in self._lists.items()}

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def ids(self, name: str) -> list[UUID]:
        return [row.id for row in self._lists[name]]

    def list_of(self, donation_id: UUID) -> str | None:
        for name, rows in self._lists.items():
            if any(row.id == donation_id for row in rows):
                return name
        return None

    # -------------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------------

    def post(self, message: FeedMessage | _Snapshot | _SnapshotFailed) -> None:
        if self._closed:
            return
        self._inbox.put_nowait(message)

    def post_snapshot(self, lists: Lists) -> None:
        self.post(_Snapshot(lists))

    async def load_snapshot(self) -> None:
        """Fetch a snapshot and queue it, unless closed meanwhile."""
        if self._fetch_snapshot is None:
            raise RuntimeError("No snapshot fetcher configured")
        lists = await self._fetch_snapshot()
        if self._closed:
            return
        self.post_snapshot(lists)

    async def follow(self, messages: AsyncIterable[FeedMessage]) -> None:
        """Forward feed messages into the inbox until closed or exhausted."""
        async for message in messages:
            if self._closed:
                break
            self.post(message)

    def drain(self) -> int:
        """Apply everything queued so far. Returns how many items were handled."""
        handled = 0
        while not self._closed:
            try:
                item = self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _STOP:
                break
            self._handle(item)
            handled += 1
        return handled

    async def run(self) -> None:
        """Apply inbox items as they arrive until close()."""
        while not self._closed:
            item = await self._inbox.get()
            if item is _STOP or self._closed:
                break
            self._handle(item)

    def close(self) -> None:
        """Stop applying anything. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        while not self._inbox.empty():
            self._inbox.get_nowait()
        self._inbox.put_nowait(_STOP)

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    def _handle(self, item: FeedMessage | _Snapshot | _SnapshotFailed) -> None:
        if isinstance(item, _Snapshot):
            self._apply_snapshot(item.lists)
        elif isinstance(item, _SnapshotFailed):
            self._snapshot_failed(item.error)
        elif isinstance(item, Resync):
            self._resync(item.reason)
        elif isinstance(item, DonationChange):
            if self._loaded:
                self._apply_change(item)
            else:
                self._buffer(item)

    def _buffer(self, change: DonationChange) -> None:
        if len(self._pending) >= self._max_pending:
            # The next snapshot supersedes everything dropped here
            self._pending.clear()
            self._resync("buffer overflow")
        self._pending.append(change)

    def _resync(self, reason: str | None) -> None:
        logger.info("Dashboard resync requested (%s)", reason)
        self._loaded = False
        if self._fetch_snapshot is None:
            logger.warning("Dashboard is stale until a snapshot is posted (%s)", reason)
            return
        task = asyncio.get_running_loop().create_task(self.load_snapshot())
        self._tasks.add(task)
        task.add_done_callback(self._snapshot_task_done)

    def _snapshot_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.post(_SnapshotFailed(error))

    def _snapshot_failed(self, error: BaseException) -> None:
        logger.warning("Dashboard snapshot fetch failed: %s", error)
        self.last_error = error
        # A later snapshot is newer than anything buffered so far
        self._pending.clear()

    def _apply_snapshot(self, lists: Lists) -> None:
        self._lists = {name: [] for name in list_names(self.viewer.role)}
        self._versions.clear()
        for rows in lists.values():
            for row in rows:
                if row.id in self._tombstones:
                    continue
                known = self._versions.get(row.id)
                if known is not None and known >= row.version:
                    continue
                self._place(row)
        # Snapshot lists are newest first; _place prepends
        for rows in self._lists.values():
            rows.reverse()
        self._loaded = True
        self.last_error = None

        pending, self._pending = self._pending, []
        for change in pending:
            self._apply_change(change)

    def _apply_change(self, change: DonationChange) -> None:
        if change.event_type == FeedEventType.DELETE:
            self._tombstones.add(change.donation_id)
            self._versions.pop(change.donation_id, None)
            self._remove(change.donation_id)
            return

        row = change.new
        if row is None or row.id in self._tombstones:
            return
        version = change.version or row.version
        known = self._versions.get(row.id)
        if known is not None and version <= known:
            return
        self._place(row, version)

    def _place(self, row: DonationRead, version: int | None = None) -> None:
        self._versions[row.id] = version or row.version
        self._remove(row.id)
        name = classify(row, self.viewer)
        if name is not None:
            self._lists[name].insert(0, row)

    def _remove(self, donation_id: UUID) -> None:
        for name, rows in self._lists.items():
            self._lists[name] = [row for row in rows if row.id != donation_id]
