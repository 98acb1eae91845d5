import pytest

from app.models import OrderStatus, Rider, RiderAvailability, RiderRosterEntry
from app.services.delivery.rider_availability import RiderAvailabilityService
from tests.conftest import OTHER_TENANT_ID, RIDER_ID, TENANT_ID, get


@pytest.fixture
def availability(session_factory):
    return RiderAvailabilityService(session_factory)


def test_sets_profile_and_roster(availability, rider, session_factory):
    assert availability.set_rider_availability(RIDER_ID, [TENANT_ID, OTHER_TENANT_ID], RiderAvailability.ON_DELIVERY)

    assert get(session_factory, Rider, RIDER_ID).availability == RiderAvailability.ON_DELIVERY
    with session_factory() as session:
        entries = session.query(RiderRosterEntry).filter_by(rider_id=RIDER_ID).all()
    # Only existing roster entries are touched
    assert [(e.tenant_id, e.availability) for e in entries] == [(TENANT_ID, RiderAvailability.ON_DELIVERY)]


def test_creates_missing_profile(availability, session_factory):
    assert availability.set_rider_availability("rider_new", [], RiderAvailability.ONLINE)

    assert get(session_factory, Rider, "rider_new").availability == RiderAvailability.ONLINE


def test_has_active_orders(availability, rider, make_order):
    assert not availability.has_active_orders(RIDER_ID)

    busy = make_order(status=OrderStatus.ON_THE_WAY, delivery_boy_id=RIDER_ID)
    make_order(status=OrderStatus.DELIVERED, delivery_boy_id=RIDER_ID)

    assert availability.has_active_orders(RIDER_ID)
    assert not availability.has_active_orders(RIDER_ID, exclude_order_ids=[busy])


def test_audit_finds_and_repairs_divergence(availability, rider, session_factory):
    with session_factory.begin() as session:
        session.get(Rider, RIDER_ID).availability = RiderAvailability.OFFLINE

    report = availability.audit_rider_availability()
    assert report["checked"] == 1
    assert report["mismatches"] == [{
        "rider_id": RIDER_ID,
        "tenant_id": TENANT_ID,
        "roster": "online",
        "profile": "offline",
    }]
    assert report["repaired"] == 0

    repaired = availability.audit_rider_availability(repair=True)
    assert repaired["repaired"] == 1
    assert availability.audit_rider_availability()["mismatches"] == []
