"""Authentication router: sign-up, sign-in and session management."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from sharebite.core.config import settings
from sharebite.core.deps import COOKIE_NAME, get_current_user, get_db, require_csrf_header
from sharebite.core.rate_limit import AUTH_LIMIT, limiter
from sharebite.schemas.auth import MeResponse, SessionResponse, SignInRequest, SignUpRequest
from sharebite.schemas.user import UserRead
from sharebite.services import auth_service
from sharebite.services.auth_service import EmailAlreadyRegisteredError, InvalidCredentialsError

router = APIRouter()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )


@router.post(
    "/signup",
    response_model=SessionResponse,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(AUTH_LIMIT)
def sign_up(
    request: Request,
    response: Response,
    payload: SignUpRequest,
    db: Session = Depends(get_db),
):
    """
    Create an account and start a session.

    Returns 409 if the email is already registered.
    """
    try:
        user = auth_service.sign_up(db, payload)
    except EmailAlreadyRegisteredError as e:
        raise HTTPException(status_code=409, detail=str(e))

    token = auth_service.issue_session(user)
    _set_session_cookie(response, token)
    return SessionResponse(
        token=token,
        user=UserRead.model_validate(user),
        dashboard_path=auth_service.dashboard_path(user.role),
    )


@router.post(
    "/signin",
    response_model=SessionResponse,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(AUTH_LIMIT)
def sign_in(
    request: Request,
    response: Response,
    payload: SignInRequest,
    db: Session = Depends(get_db),
):
    """
    Exchange credentials for a session.

    The token is set as an httponly cookie and also returned in the body
    for clients that authenticate the WebSocket feed with a query param.
    """
    try:
        user = auth_service.authenticate(db, str(payload.email), payload.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))

    token = auth_service.issue_session(user)
    _set_session_cookie(response, token)
    return SessionResponse(
        token=token,
        user=UserRead.model_validate(user),
        dashboard_path=auth_service.dashboard_path(user.role),
    )


@router.post("/signout", dependencies=[Depends(require_csrf_header)])
def sign_out(response: Response):
    """Clear the session cookie."""
    response.delete_cookie(COOKIE_NAME, path="/")
    return {"status": "signed_out"}


@router.get("/me", response_model=MeResponse)
def get_me(user=Depends(get_current_user)):
    """Current user profile plus the dashboard the client should open."""
    return MeResponse(
        user=UserRead.model_validate(user),
        dashboard_path=auth_service.dashboard_path(user.role),
    )
