"""
Client session state.

A Session is an explicit value passed to whatever needs the current user.
SessionStore holds the process-wide current session and notifies
registered listeners when it changes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from sharebite.core.visibility import Viewer
from sharebite.schemas.user import UserRead

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class Session:
    token: str
    user: UserRead
    dashboard_path: str

    @property
    def viewer(self) -> Viewer:
        return Viewer(
            id=self.user.id,
            role=self.user.role,
            acceptance_type=self.user.acceptance_type,
        )


Listener = Callable[[SessionEvent, "Session | None"], None]


class SessionStore:
    """Holds the current session and fans out change events."""

    def __init__(self) -> None:
        self._session: Session | None = None
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> Session | None:
        return self._session

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def sign_in(self, session: Session) -> None:
        self._session = session
        self._emit(SessionEvent.SIGNED_IN, session)

    def sign_out(self) -> None:
        if self._session is None:
            return
        self._session = None
        self._emit(SessionEvent.SIGNED_OUT, None)

    def _emit(self, event: SessionEvent, session: Session | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, session)
            except Exception:
                logger.exception("Session listener failed on %s", event.value)


# Process-wide store
default_store = SessionStore()
