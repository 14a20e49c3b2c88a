"""
Async HTTP client for the ShareBite API.

Lifecycle calls return a TransitionOutcome: a lost race or a refused
transition is a normal result the caller renders, not an exception.
Nothing is retried; each call maps to one user action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

import httpx

from sharebite.client.errors import NotAuthenticated, ServiceError, ValidationFailed
from sharebite.client.session import Session, SessionStore, default_store
from sharebite.db.enums import DonationAcceptance, TransitionFailure
from sharebite.schemas.analytics import ContributionsResponse
from sharebite.schemas.auth import MeResponse, SessionResponse, SignUpRequest
from sharebite.schemas.donation import (
    DashboardResponse,
    DonationCreate,
    DonationRead,
    RouteResponse,
)
from sharebite.schemas.user import NearestOrganisation
from sharebite.utils.datetime_parsing import ExpiryParseError, resolve_expiry
from sharebite.utils.units import normalize_quantity

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

# Every mutation must carry this header
CSRF_HEADERS = {"X-Requested-With": "XMLHttpRequest"}

_FAILURE_BY_STATUS = {
    404: TransitionFailure.NOT_FOUND,
    403: TransitionFailure.NOT_PERMITTED,
    409: TransitionFailure.CONFLICT,
}


@dataclass
class TransitionOutcome:
    """Result of a lifecycle call as the UI needs it."""
    applied: bool
    donation: DonationRead | None = None
    message: str | None = None
    failure: TransitionFailure | None = None

    @property
    def conflict(self) -> bool:
        """Someone else got there first; refresh instead of retrying."""
        return self.failure == TransitionFailure.CONFLICT


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, list):
        # Request validation errors
        return "; ".join(str(item.get("msg", item)) for item in detail)
    return str(detail) if detail else response.reason_phrase


def validate_donation(payload: DonationCreate, *, now: datetime | None = None) -> None:
    """
    Check a donation form locally, before any network call.

    Raises:
        ValidationFailed: first invalid field
    """
    try:
        normalize_quantity(payload.quantity, payload.quantity_unit)
    except ValueError as exc:
        raise ValidationFailed(str(exc), field="quantity") from exc
    if payload.acceptance == DonationAcceptance.EDIBLE:
        try:
            resolve_expiry(payload.expiry or "", payload.custom_expiry, now=now)
        except ExpiryParseError as exc:
            raise ValidationFailed(str(exc), field="expiry") from exc
    if payload.latitude is None or payload.longitude is None:
        raise ValidationFailed(
            "Location is required. Allow location access or enter your location manually.",
            field="location",
        )


class ShareBiteClient:
    """Thin typed wrapper over the REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        store: SessionStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.store = store or default_store
        self._http = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout,
            headers=CSRF_HEADERS,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ShareBiteClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def auth_headers(self) -> dict[str, str]:
        session = self.store.current
        if session is None:
            return {}
        return {"Authorization": f"Bearer {session.token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self.auth_headers(), **kwargs.pop("headers", {})}
        try:
            return await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            logger.warning("Request to %s failed", path, exc_info=exc)
            raise ServiceError(f"Could not reach ShareBite: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        message = _detail(response)
        if response.status_code == 401:
            raise NotAuthenticated(message)
        if response.status_code == 422:
            raise ValidationFailed(message)
        raise ServiceError(message, status_code=response.status_code)

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        self._raise_for_status(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _transition(self, path: str, body: dict | None = None) -> TransitionOutcome:
        response = await self._request("POST", path, json=body or {})
        failure = _FAILURE_BY_STATUS.get(response.status_code)
        if failure is not None:
            return TransitionOutcome(applied=False, message=_detail(response), failure=failure)
        self._raise_for_status(response)
        donation = DonationRead.model_validate(response.json()["donation"])
        return TransitionOutcome(applied=True, donation=donation)

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def _start_session(self, data: dict) -> Session:
        body = SessionResponse.model_validate(data)
        session = Session(token=body.token, user=body.user, dashboard_path=body.dashboard_path)
        self.store.sign_in(session)
        return session

    async def sign_up(self, payload: SignUpRequest) -> Session:
        data = await self._json("POST", "/auth/signup", json=payload.model_dump(mode="json"))
        return self._start_session(data)

    async def sign_in(self, email: str, password: str) -> Session:
        data = await self._json(
            "POST", "/auth/signin", json={"email": email, "password": password}
        )
        return self._start_session(data)

    async def sign_out(self) -> None:
        try:
            await self._json("POST", "/auth/signout")
        finally:
            self._http.cookies.clear()
            self.store.sign_out()

    async def me(self) -> MeResponse:
        return MeResponse.model_validate(await self._json("GET", "/auth/me"))

    # -------------------------------------------------------------------------
    # Donations
    # -------------------------------------------------------------------------

    async def create_donation(self, payload: DonationCreate) -> DonationRead:
        validate_donation(payload)
        data = await self._json("POST", "/donations", json=payload.model_dump(mode="json"))
        return DonationRead.model_validate(data)

    async def dashboard(self) -> DashboardResponse:
        return DashboardResponse.model_validate(await self._json("GET", "/donations/views/me"))

    async def get_donation(self, donation_id: UUID) -> DonationRead:
        return DonationRead.model_validate(await self._json("GET", f"/donations/{donation_id}"))

    async def route(
        self,
        donation_id: UUID,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> RouteResponse:
        params = {}
        if latitude is not None and longitude is not None:
            params = {"latitude": latitude, "longitude": longitude}
        data = await self._json("GET", f"/donations/{donation_id}/route", params=params)
        return RouteResponse.model_validate(data)

    async def nearest_organisations(
        self,
        latitude: float | None = None,
        longitude: float | None = None,
        limit: int | None = None,
    ) -> list[NearestOrganisation]:
        params: dict[str, Any] = {}
        if latitude is not None and longitude is not None:
            params.update(latitude=latitude, longitude=longitude)
        if limit is not None:
            params["limit"] = limit
        data = await self._json("GET", "/users/organisations/nearest", params=params)
        return [NearestOrganisation.model_validate(item) for item in data]

    async def contributions(self, months: int = 6) -> ContributionsResponse:
        data = await self._json("GET", "/analytics/contributions", params={"months": months})
        return ContributionsResponse.model_validate(data)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def claim(self, donation_id: UUID, *, volunteer_needed: bool = False) -> TransitionOutcome:
        return await self._transition(
            f"/donations/{donation_id}/claim", {"volunteer_needed": volunteer_needed}
        )

    async def set_volunteer_needed(self, donation_id: UUID, needed: bool) -> TransitionOutcome:
        return await self._transition(
            f"/donations/{donation_id}/volunteer-needed", {"volunteer_needed": needed}
        )

    async def volunteer_accept(self, donation_id: UUID) -> TransitionOutcome:
        return await self._transition(f"/donations/{donation_id}/accept")

    async def mark_picked(self, donation_id: UUID) -> TransitionOutcome:
        return await self._transition(f"/donations/{donation_id}/picked")

    async def mark_delivered(self, donation_id: UUID) -> TransitionOutcome:
        return await self._transition(f"/donations/{donation_id}/delivered")

    async def confirm(self, donation_id: UUID) -> TransitionOutcome:
        return await self._transition(f"/donations/{donation_id}/confirm")
