"""
Tests for dashboard list matching.

The SQL filters in the query service and the in-memory predicates in
core.visibility must put every donation in the same list.
"""

import pytest
from sqlalchemy import select

from sharebite.core.visibility import DASHBOARDS, Viewer, can_claim_category, classify, list_names
from sharebite.db.enums import AcceptanceType, DonationAcceptance, Role
from sharebite.db.models import Donation
from sharebite.services import donation_query_service, lifecycle_service
from sharebite.services.donation_query_service import UnknownListError


def viewer(user) -> Viewer:
    return Viewer(
        id=user.id,
        role=Role(user.role),
        acceptance_type=AcceptanceType(user.acceptance_type) if user.acceptance_type else None,
    )


@pytest.fixture
def populated(db, donor, edible_org, non_edible_org, both_org, volunteer, make_user, make_donation):
    """One donation in each interesting state."""
    org = viewer(edible_org)
    vol = viewer(volunteer)

    posted = make_donation(donor, food_type="Rice")
    peels = make_donation(donor, food_type="Peels", acceptance=DonationAcceptance.NON_EDIBLE)

    claimed = make_donation(donor, food_type="Bread")
    lifecycle_service.claim(db, claimed.id, org)

    wanted = make_donation(donor, food_type="Dal")
    lifecycle_service.claim(db, wanted.id, org, volunteer_needed=True)

    carried = make_donation(donor, food_type="Chapati")
    lifecycle_service.claim(db, carried.id, org, volunteer_needed=True)
    lifecycle_service.volunteer_accept(db, carried.id, vol)
    lifecycle_service.mark_picked(db, carried.id, vol)

    done = make_donation(donor, food_type="Fruit")
    lifecycle_service.claim(db, done.id, org)
    lifecycle_service.mark_picked(db, done.id, org)
    lifecycle_service.mark_delivered(db, done.id, org)
    lifecycle_service.confirm(db, done.id, org)

    soon = make_donation(donor, food_type="Curd", expiry="custom", custom_expiry="10 minutes")
    lifecycle_service.divert_near_expiry(db, window_minutes=15)

    other_donor = make_user(Role.DONOR)
    elsewhere = make_donation(other_donor, food_type="Soup")

    return {
        "posted": posted.id,
        "peels": peels.id,
        "claimed": claimed.id,
        "wanted": wanted.id,
        "carried": carried.id,
        "done": done.id,
        "soon": soon.id,
        "elsewhere": elsewhere.id,
    }


def test_sql_filters_agree_with_predicates(db, populated, donor, edible_org, non_edible_org, both_org, volunteer):
    db.expire_all()
    rows = db.execute(select(Donation)).scalars().all()

    for user in (donor, edible_org, non_edible_org, both_org, volunteer):
        v = viewer(user)
        for name in list_names(v.role):
            from_sql = {d.id for d in donation_query_service.get_list(db, v, name)}
            from_predicate = {row.id for row in rows if classify(row, v) == name}
            assert from_sql == from_predicate, (v.role, name)


def test_lists_are_disjoint(db, populated, edible_org, both_org, donor, volunteer):
    for user in (edible_org, both_org, donor, volunteer):
        dashboard = donation_query_service.get_dashboard(db, viewer(user))
        seen = [d.id for rows in dashboard.values() for d in rows]
        assert len(seen) == len(set(seen))


def test_recipient_posted_list_follows_capability(db, populated, edible_org, non_edible_org, both_org):
    edible = donation_query_service.get_list(db, viewer(edible_org), "posted")
    non_edible = donation_query_service.get_list(db, viewer(non_edible_org), "posted")
    both = donation_query_service.get_list(db, viewer(both_org), "posted")

    assert {d.id for d in edible} == {populated["posted"], populated["elsewhere"]}
    assert {d.id for d in non_edible} == {populated["peels"]}
    assert {d.id for d in both} == {populated["posted"], populated["peels"], populated["elsewhere"]}


def test_diverted_rows_only_reach_non_edible_recipients(db, populated, edible_org, non_edible_org, both_org):
    assert donation_query_service.get_list(db, viewer(edible_org), "diverted") == []
    for user in (non_edible_org, both_org):
        rows = donation_query_service.get_list(db, viewer(user), "diverted")
        assert [d.id for d in rows] == [populated["soon"]]


def test_donor_dashboard(db, populated, donor):
    dashboard = donation_query_service.get_dashboard(db, viewer(donor))

    assert list(dashboard) == list_names(Role.DONOR)
    assert {d.id for d in dashboard["unclaimed"]} == {populated["posted"], populated["peels"]}
    assert {d.id for d in dashboard["in_progress"]} == {
        populated["claimed"],
        populated["wanted"],
        populated["carried"],
    }
    assert [d.id for d in dashboard["confirmed"]] == [populated["done"]]
    assert [d.id for d in dashboard["diverted"]] == [populated["soon"]]
    # Party names are resolved for display
    confirmed = dashboard["confirmed"][0]
    assert confirmed.donor.name == "Asha Donor"
    assert confirmed.organisation.name == "City Food Bank"


def test_volunteer_dashboard(db, populated, volunteer):
    dashboard = donation_query_service.get_dashboard(db, viewer(volunteer))

    assert [d.id for d in dashboard["available"]] == [populated["wanted"]]
    assert [d.id for d in dashboard["picked"]] == [populated["carried"]]
    assert dashboard["picked"][0].volunteer.name == "Ravi Volunteer"


def test_lists_are_newest_activity_first(db, donor, edible_org, make_donation):
    first = make_donation(donor, food_type="First")
    second = make_donation(donor, food_type="Second")
    lifecycle_service.claim(db, first.id, viewer(edible_org))
    third = make_donation(donor, food_type="Third")

    unclaimed = donation_query_service.get_list(db, viewer(donor), "unclaimed")
    assert [d.id for d in unclaimed] == [third.id, second.id]


def test_unknown_list_name(db, donor):
    with pytest.raises(UnknownListError):
        donation_query_service.get_list(db, viewer(donor), "available")


def test_every_role_has_a_dashboard():
    assert set(DASHBOARDS) == set(Role)


def test_sql_filters_declare_the_same_lists_as_predicates():
    for role in DASHBOARDS:
        assert list(donation_query_service.LIST_FILTERS[role]) == list_names(role)


def test_diverted_category_check_ignores_original_category(db, donor, make_donation, non_edible_org, edible_org):
    donation = make_donation(donor, expiry="custom", custom_expiry="5 minutes")
    lifecycle_service.divert_near_expiry(db, window_minutes=10)
    db.expire_all()
    row = db.get(Donation, donation.id)

    assert row.acceptance == DonationAcceptance.EDIBLE.value
    assert can_claim_category(row, viewer(non_edible_org))
    assert not can_claim_category(row, viewer(edible_org))


@pytest.mark.asyncio
async def test_dashboard_endpoints(client_for, populated, edible_org):
    client = await client_for(edible_org)

    response = await client.get("/donations/views/me")
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "recipient"
    assert list(body["lists"]) == list_names(Role.RECIPIENT)

    single = await client.get("/donations/views/me/claimed")
    assert single.status_code == 200
    assert {d["id"] for d in single.json()} == {str(populated["claimed"]), str(populated["wanted"])}

    assert (await client.get("/donations/views/me/unclaimed")).status_code == 404
