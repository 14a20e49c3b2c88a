"""Python client for the ShareBite API: session, requests, feed and live dashboards."""

from sharebite.client.api import ShareBiteClient, TransitionOutcome
from sharebite.client.errors import NotAuthenticated, ServiceError, ShareBiteClientError, ValidationFailed
from sharebite.client.feed import Resync, stream_changes
from sharebite.client.reconciler import DashboardReconciler
from sharebite.client.session import Session, SessionEvent, SessionStore, default_store

__all__ = [
    "DashboardReconciler",
    "NotAuthenticated",
    "Resync",
    "ServiceError",
    "Session",
    "SessionEvent",
    "SessionStore",
    "ShareBiteClient",
    "ShareBiteClientError",
    "TransitionOutcome",
    "ValidationFailed",
    "default_store",
    "stream_changes",
]
