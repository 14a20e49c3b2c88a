"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, recreated for every test
- User and donation factories for each role
- HTTPX AsyncClient per user with session cookie and CSRF header
"""
import os
import uuid
from contextlib import AsyncExitStack
from decimal import Decimal
from typing import AsyncGenerator, Generator

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENV"] = "test"
os.environ["TESTING"] = "true"
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["JWT_SECRET"] = "test-jwt-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from sharebite.core.deps import COOKIE_NAME, get_db
from sharebite.core.security import create_session_token, hash_password
from sharebite.db.base import Base
from sharebite.db.enums import AcceptanceType, DonationAcceptance, OrganisationType, Role
from sharebite.db.models import Donation, User
from sharebite.db.session import SessionLocal, engine
from sharebite.main import app
from sharebite.schemas.donation import DonationCreate
from sharebite.services import donation_service

TEST_PASSWORD = "correct-horse-battery"
CSRF_HEADERS = {"X-Requested-With": "XMLHttpRequest"}

# Central Bengaluru and a few nearby points
DONOR_LOCATION = (12.9716, 77.5946)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; app code is free to commit."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_password() -> str:
    return TEST_PASSWORD


@pytest.fixture(scope="function")
def make_user(db: Session):
    """Factory: make_user(Role.RECIPIENT, acceptance_type=AcceptanceType.BOTH, ...)."""

    def _make(
        role: Role,
        *,
        name: str | None = None,
        acceptance_type: AcceptanceType | None = None,
        organisation_type: OrganisationType | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        email: str | None = None,
    ) -> User:
        if role == Role.RECIPIENT:
            acceptance_type = acceptance_type or AcceptanceType.EDIBLE
            organisation_type = organisation_type or OrganisationType.OTHERS
        user = User(
            id=uuid.uuid4(),
            email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@sharebite.org",
            password_hash=hash_password(TEST_PASSWORD),
            name=name or f"Test {role.value.title()}",
            role=role.value,
            address="1 Test Street",
            latitude=latitude,
            longitude=longitude,
            acceptance_type=acceptance_type.value if acceptance_type else None,
            organisation_type=organisation_type.value if organisation_type else None,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture(scope="function")
def donor(make_user) -> User:
    return make_user(Role.DONOR, name="Asha Donor")


@pytest.fixture(scope="function")
def edible_org(make_user) -> User:
    return make_user(
        Role.RECIPIENT,
        name="City Food Bank",
        acceptance_type=AcceptanceType.EDIBLE,
        organisation_type=OrganisationType.FOOD_BANK,
        latitude=12.98,
        longitude=77.60,
    )


@pytest.fixture(scope="function")
def non_edible_org(make_user) -> User:
    return make_user(
        Role.RECIPIENT,
        name="Green Biogas",
        acceptance_type=AcceptanceType.NON_EDIBLE,
        organisation_type=OrganisationType.BIOGAS,
        latitude=13.05,
        longitude=77.65,
    )


@pytest.fixture(scope="function")
def both_org(make_user) -> User:
    return make_user(
        Role.RECIPIENT,
        name="Community Kitchen",
        acceptance_type=AcceptanceType.BOTH,
        organisation_type=OrganisationType.NGO,
        latitude=12.90,
        longitude=77.50,
    )


@pytest.fixture(scope="function")
def volunteer(make_user) -> User:
    return make_user(Role.VOLUNTEER, name="Ravi Volunteer", latitude=12.95, longitude=77.58)


@pytest.fixture(scope="function")
def make_donation(db: Session):
    """Factory: make_donation(donor, acceptance=DonationAcceptance.NON_EDIBLE, ...)."""

    def _make(
        donor: User,
        *,
        food_type: str = "Vegetable biryani",
        quantity: str = "5",
        quantity_unit: str = "kg",
        acceptance: DonationAcceptance = DonationAcceptance.EDIBLE,
        expiry: str = "2 hours",
        custom_expiry: str | None = None,
    ) -> Donation:
        read = donation_service.create_donation(
            db,
            donor,
            DonationCreate(
                food_type=food_type,
                quantity=Decimal(quantity),
                quantity_unit=quantity_unit,
                acceptance=acceptance,
                expiry=expiry,
                custom_expiry=custom_expiry,
                latitude=DONOR_LOCATION[0],
                longitude=DONOR_LOCATION[1],
            ),
        )
        return db.get(Donation, read.id)

    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def override_db(db: Session) -> Generator[Session, None, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield db
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(override_db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient (CSRF header included)."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=CSRF_HEADERS,
    ) as c:
        yield c


def session_token(user: User) -> str:
    return create_session_token(user.id, user.role, user.token_version)


@pytest.fixture(scope="function")
async def client_for(override_db: Session) -> AsyncGenerator:
    """Factory: await client_for(user) -> AsyncClient authenticated as user."""
    async with AsyncExitStack() as stack:

        async def _make(user: User, *, csrf: bool = True) -> AsyncClient:
            return await stack.enter_async_context(
                AsyncClient(
                    transport=ASGITransport(app=app),
                    base_url="http://test",
                    cookies={COOKIE_NAME: session_token(user)},
                    headers=CSRF_HEADERS if csrf else {},
                )
            )

        yield _make


# =============================================================================
# Read-model Fixtures
# =============================================================================

@pytest.fixture
def make_read():
    """Factory for DonationRead values without touching the database."""
    from datetime import datetime, timedelta, timezone

    from sharebite.db.enums import DonationStatus, QuantityUnit
    from sharebite.schemas.donation import DonationRead

    def _make(*, donor_id: uuid.UUID, version: int = 1, **overrides) -> DonationRead:
        now = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
        values = dict(
            id=uuid.uuid4(),
            donor_id=donor_id,
            food_type="Rice",
            quantity=Decimal("5.000"),
            quantity_unit=QuantityUnit.KG,
            acceptance=DonationAcceptance.EDIBLE,
            latitude=DONOR_LOCATION[0],
            longitude=DONOR_LOCATION[1],
            expiry=now + timedelta(hours=2),
            status=DonationStatus.POSTED,
            version=version,
            created_at=now,
            updated_at=now + timedelta(seconds=version),
        )
        values.update(overrides)
        return DonationRead(**values)

    return _make
