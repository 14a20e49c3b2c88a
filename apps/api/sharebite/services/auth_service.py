"""Auth service - account creation, credential checks and session revocation."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sharebite.core.security import create_session_token, hash_password, verify_password
from sharebite.core.structured_logging import build_log_context
from sharebite.db.enums import ROLE_DASHBOARD_PATHS, Role
from sharebite.db.models import User
from sharebite.schemas.auth import SignUpRequest

logger = logging.getLogger(__name__)


class AuthServiceError(Exception):
    """Base class for auth service errors."""


class EmailAlreadyRegisteredError(AuthServiceError):
    pass


class InvalidCredentialsError(AuthServiceError):
    pass


def get_user_by_email(db: Session, email: str) -> User | None:
    """Get user by email (case-insensitive)."""
    return db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()


def sign_up(db: Session, payload: SignUpRequest) -> User:
    """
    Create an account with its role capability profile.

    Raises:
        EmailAlreadyRegisteredError: email already in use
    """
    email = str(payload.email).strip().lower()
    if get_user_by_email(db, email):
        raise EmailAlreadyRegisteredError("An account with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        name=payload.name.strip(),
        phone=payload.phone,
        role=payload.role.value,
        address=payload.address,
        latitude=payload.latitude,
        longitude=payload.longitude,
        acceptance_type=payload.acceptance_type.value if payload.acceptance_type else None,
        organisation_type=payload.organisation_type.value if payload.organisation_type else None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        # Concurrent sign-up with the same email
        db.rollback()
        raise EmailAlreadyRegisteredError("An account with this email already exists") from exc
    db.refresh(user)

    logger.info(
        "User signed up",
        extra=build_log_context(user_id=user.id, action="sign_up", outcome=user.role),
    )
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    """
    Check credentials.

    Raises:
        InvalidCredentialsError: unknown email or wrong password
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        logger.info("Sign-in rejected", extra=build_log_context(action="sign_in", outcome="rejected"))
        raise InvalidCredentialsError("Invalid email or password")
    return user


def issue_session(user: User) -> str:
    return create_session_token(user.id, user.role, user.token_version)


def dashboard_path(role: str | Role) -> str:
    """Where a signed-in user lands."""
    return ROLE_DASHBOARD_PATHS[Role(role)]


def revoke_all_sessions(db: Session, user_id: UUID) -> bool:
    """
    Revoke all sessions for a user by bumping token_version.

    Returns:
        True if user found and sessions revoked, False if user not found
    """
    user = db.get(User, user_id)
    if not user:
        return False
    user.token_version += 1
    db.commit()
    return True
