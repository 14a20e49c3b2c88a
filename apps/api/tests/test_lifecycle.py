"""Tests for the donation lifecycle: atomic claims, ownership and forward-only moves."""

import random
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sharebite.core.visibility import Viewer
from sharebite.db.base import Base
from sharebite.db.enums import (
    ALLOWED_TRANSITIONS,
    AcceptanceType,
    DonationAcceptance,
    DonationStatus,
    Role,
    TransitionFailure,
)
from sharebite.db.models import Donation, User
from sharebite.schemas.donation import DonationCreate
from sharebite.services import donation_service, lifecycle_service
from sharebite.services.lifecycle_service import CLAIM_CONFLICT_MESSAGE


def viewer(user) -> Viewer:
    return Viewer(
        id=user.id,
        role=Role(user.role),
        acceptance_type=AcceptanceType(user.acceptance_type) if user.acceptance_type else None,
    )


# =============================================================================
# Claim
# =============================================================================

def test_second_claim_loses_and_winner_keeps_row(db, donor, edible_org, both_org, make_donation):
    donation = make_donation(donor)

    # Both organisations read the row while it is still posted
    stale = db.get(Donation, donation.id)
    assert stale.status == DonationStatus.POSTED.value

    first = lifecycle_service.claim(db, donation.id, viewer(edible_org))
    second = lifecycle_service.claim(db, donation.id, viewer(both_org))

    assert first.applied
    assert first.donation.organisation_id == edible_org.id
    assert first.donation.status == DonationStatus.CLAIMED
    assert first.donation.version == 2

    assert not second.applied
    assert second.failure == TransitionFailure.CONFLICT
    assert second.message == CLAIM_CONFLICT_MESSAGE

    db.expire_all()
    row = db.get(Donation, donation.id)
    assert row.organisation_id == edible_org.id
    assert row.version == 2


@pytest.fixture
def file_sessions(tmp_path):
    """Sessionmaker over a file-backed SQLite database shared by several threads."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'claims.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    finally:
        engine.dispose()


def test_concurrent_claims_from_separate_sessions(file_sessions):
    with file_sessions() as session:
        donor = User(
            email="race-donor@sharebite.org",
            password_hash="x",
            name="Donor",
            role=Role.DONOR.value,
        )
        orgs = [
            User(
                email=f"race-org-{n}@sharebite.org",
                password_hash="x",
                name=f"Org {n}",
                role=Role.RECIPIENT.value,
                acceptance_type=AcceptanceType.EDIBLE.value,
                organisation_type="ngo",
            )
            for n in range(2)
        ]
        session.add_all([donor, *orgs])
        session.commit()
        viewers = [viewer(org) for org in orgs]
        donation_ids = [
            donation_service.create_donation(
                session,
                donor,
                DonationCreate(
                    food_type="Dal",
                    quantity=Decimal("3"),
                    quantity_unit="kg",
                    expiry="2 hours",
                    latitude=12.97,
                    longitude=77.59,
                ),
            ).id
            for _ in range(5)
        ]

    def attempt(donation_id, actor, barrier):
        with file_sessions() as own_session:
            barrier.wait()
            return actor.id, lifecycle_service.claim(own_session, donation_id, actor)

    with ThreadPoolExecutor(max_workers=2) as pool:
        for donation_id in donation_ids:
            barrier = threading.Barrier(2, timeout=10)
            outcomes = list(pool.map(lambda actor: attempt(donation_id, actor, barrier), viewers))

            applied = [(org_id, result) for org_id, result in outcomes if result.applied]
            lost = [result for _, result in outcomes if not result.applied]
            assert len(applied) == 1
            assert len(lost) == 1
            assert lost[0].failure == TransitionFailure.CONFLICT

            winner_id, winner = applied[0]
            assert winner.donation.organisation_id == winner_id
            with file_sessions() as check:
                row = check.get(Donation, donation_id)
                assert row.organisation_id == winner_id
                assert row.status == DonationStatus.CLAIMED.value
                assert row.version == 2


def test_claim_respects_acceptance_capability(db, donor, edible_org, non_edible_org, make_donation):
    peels = make_donation(donor, acceptance=DonationAcceptance.NON_EDIBLE, food_type="Peels")

    refused = lifecycle_service.claim(db, peels.id, viewer(edible_org))
    assert refused.failure == TransitionFailure.NOT_PERMITTED

    ok = lifecycle_service.claim(db, peels.id, viewer(non_edible_org))
    assert ok.applied


def test_claim_unknown_donation_is_not_found(db, edible_org):
    import uuid

    result = lifecycle_service.claim(db, uuid.uuid4(), viewer(edible_org))
    assert result.failure == TransitionFailure.NOT_FOUND


def test_only_recipients_claim(db, donor, volunteer, make_donation):
    donation = make_donation(donor)
    result = lifecycle_service.claim(db, donation.id, viewer(volunteer))
    assert result.failure == TransitionFailure.NOT_PERMITTED


def test_diverted_rows_need_non_edible_capability(db, donor, edible_org, both_org, make_donation):
    donation = make_donation(donor, expiry="custom", custom_expiry="20 minutes")
    diverted = lifecycle_service.divert_near_expiry(db, window_minutes=30)
    assert [d.id for d in diverted] == [donation.id]

    assert lifecycle_service.claim(db, donation.id, viewer(edible_org)).failure == (
        TransitionFailure.NOT_PERMITTED
    )
    result = lifecycle_service.claim(db, donation.id, viewer(both_org))
    assert result.applied
    assert result.donation.status == DonationStatus.CLAIMED


# =============================================================================
# Delivery paths
# =============================================================================

def test_organisation_path_pick_deliver_confirm(db, donor, edible_org, both_org, make_donation):
    donation = make_donation(donor)
    org = viewer(edible_org)
    assert lifecycle_service.claim(db, donation.id, org).applied

    # Another organisation cannot move it
    other = lifecycle_service.mark_picked(db, donation.id, viewer(both_org))
    assert other.failure == TransitionFailure.NOT_PERMITTED

    # Cannot skip ahead
    assert lifecycle_service.mark_delivered(db, donation.id, org).failure == TransitionFailure.CONFLICT

    assert lifecycle_service.mark_picked(db, donation.id, org).applied
    delivered = lifecycle_service.mark_delivered(db, donation.id, org)
    assert delivered.applied
    assert delivered.donation.delivered_at is not None

    confirmed = lifecycle_service.confirm(db, donation.id, org)
    assert confirmed.applied
    assert confirmed.donation.status == DonationStatus.CONFIRMED
    assert confirmed.donation.version == 5


def test_volunteer_path(db, donor, edible_org, volunteer, make_user, make_donation):
    donation = make_donation(donor)
    org = viewer(edible_org)
    vol = viewer(volunteer)

    # Not requested yet
    assert lifecycle_service.claim(db, donation.id, org).applied
    assert lifecycle_service.volunteer_accept(db, donation.id, vol).failure == (
        TransitionFailure.NOT_PERMITTED
    )

    assert lifecycle_service.set_volunteer_needed(db, donation.id, org, True).applied
    accepted = lifecycle_service.volunteer_accept(db, donation.id, vol)
    assert accepted.applied
    assert accepted.donation.volunteer_id == volunteer.id
    assert accepted.donation.status == DonationStatus.ACCEPTED

    # A second volunteer lost the race
    late = make_user(Role.VOLUNTEER)
    assert lifecycle_service.volunteer_accept(db, donation.id, viewer(late)).failure == (
        TransitionFailure.CONFLICT
    )

    # Once a volunteer is assigned, the organisation can no longer pick up
    assert lifecycle_service.mark_picked(db, donation.id, org).failure == (
        TransitionFailure.NOT_PERMITTED
    )
    assert lifecycle_service.set_volunteer_needed(db, donation.id, org, False).failure == (
        TransitionFailure.CONFLICT
    )

    assert lifecycle_service.mark_picked(db, donation.id, vol).applied
    assert lifecycle_service.mark_delivered(db, donation.id, org).failure == (
        TransitionFailure.NOT_PERMITTED
    )
    assert lifecycle_service.mark_delivered(db, donation.id, vol).applied
    assert lifecycle_service.confirm(db, donation.id, org).applied

    db.expire_all()
    row = db.get(Donation, donation.id)
    assert row.volunteer_id == volunteer.id
    assert row.status == DonationStatus.CONFIRMED.value


# =============================================================================
# Forward-only
# =============================================================================

def test_random_operation_sequences_never_move_backwards(
    db, donor, edible_org, both_org, volunteer, make_donation
):
    order = {
        DonationStatus.POSTED: 0,
        DonationStatus.DIVERTED: 1,
        DonationStatus.EXPIRED: 1,
        DonationStatus.CLAIMED: 2,
        DonationStatus.ACCEPTED: 3,
        DonationStatus.PICKED: 4,
        DonationStatus.DELIVERED: 5,
        DonationStatus.CONFIRMED: 6,
    }
    actors = [viewer(edible_org), viewer(both_org), viewer(volunteer)]
    operations = [
        lambda d, a: lifecycle_service.claim(db, d, a, volunteer_needed=True),
        lambda d, a: lifecycle_service.volunteer_accept(db, d, a),
        lambda d, a: lifecycle_service.mark_picked(db, d, a),
        lambda d, a: lifecycle_service.mark_delivered(db, d, a),
        lambda d, a: lifecycle_service.confirm(db, d, a),
        lambda d, a: lifecycle_service.set_volunteer_needed(db, d, a, True),
    ]

    rng = random.Random(1234)
    for _ in range(5):
        donation = make_donation(donor)
        previous = DonationStatus.POSTED
        previous_version = 1
        for _ in range(40):
            result = rng.choice(operations)(donation.id, rng.choice(actors))
            db.expire_all()
            row = db.get(Donation, donation.id)
            current = DonationStatus(row.status)
            assert order[current] >= order[previous]
            if current != previous:
                assert current in ALLOWED_TRANSITIONS[previous]
            if result.applied:
                assert row.version == previous_version + 1
            else:
                assert row.version == previous_version
            previous, previous_version = current, row.version


# =============================================================================
# HTTP mapping
# =============================================================================

@pytest.mark.asyncio
async def test_claim_endpoint_maps_race_to_409(client_for, donor, edible_org, both_org, make_donation):
    donation = make_donation(donor)
    first = await client_for(edible_org)
    second = await client_for(both_org)

    won = await first.post(f"/donations/{donation.id}/claim", json={"volunteer_needed": True})
    assert won.status_code == 200, won.text
    assert won.json()["donation"]["volunteer_needed"] is True

    lost = await second.post(f"/donations/{donation.id}/claim", json={})
    assert lost.status_code == 409
    assert lost.json()["detail"] == CLAIM_CONFLICT_MESSAGE


@pytest.mark.asyncio
async def test_transition_endpoints_map_failures(client_for, donor, edible_org, volunteer, make_donation):
    import uuid

    donation = make_donation(donor)
    org = await client_for(edible_org)
    vol = await client_for(volunteer)

    assert (await org.post(f"/donations/{uuid.uuid4()}/claim", json={})).status_code == 404
    # Volunteers are gated by role before the service runs
    assert (await vol.post(f"/donations/{donation.id}/claim", json={})).status_code == 403

    assert (await org.post(f"/donations/{donation.id}/claim", json={})).status_code == 200
    assert (await vol.post(f"/donations/{donation.id}/accept")).status_code == 403
    assert (await org.post(f"/donations/{donation.id}/confirm")).status_code == 409
    assert (await org.post(f"/donations/{donation.id}/picked")).status_code == 200
    assert (await org.post(f"/donations/{donation.id}/delivered")).status_code == 200
    confirmed = await org.post(f"/donations/{donation.id}/confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["donation"]["status"] == "confirmed"
