"""Shared fixtures: a fresh SQLite database per test and helpers to seed it."""
from datetime import datetime, timedelta
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from app.config.database import build_engine, build_session_factory, init_db
from app.core.auth import Actor, Role, create_access_token
from app.main import create_app
from app.models import (
    Business,
    DeliveryType,
    DineInTab,
    Order,
    OrderStatus,
    RestaurantTable,
    Rider,
    RiderAvailability,
    RiderRosterEntry,
    TabStatus,
)
from app.models.base import utcnow

TENANT_ID = "rest_spice"
OTHER_TENANT_ID = "rest_other"
RIDER_ID = "rider_amit"


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 12, 0, 5))


@pytest.fixture
def restaurant(session_factory):
    with session_factory.begin() as session:
        session.add(Business(id=TENANT_ID, name="Spice Route", business_type="restaurant"))
        session.add(Business(id=OTHER_TENANT_ID, name="Other Place", business_type="restaurant"))
        session.add(RestaurantTable(tenant_id=TENANT_ID, table_id="T1", max_capacity=4))
        session.add(RestaurantTable(tenant_id=TENANT_ID, table_id="T2", max_capacity=2))
    return TENANT_ID


@pytest.fixture
def rider(session_factory):
    with session_factory.begin() as session:
        session.add(Rider(id=RIDER_ID, name="Amit", availability=RiderAvailability.ONLINE))
        session.add(RiderRosterEntry(tenant_id=TENANT_ID, rider_id=RIDER_ID, availability=RiderAvailability.ONLINE))
    return RIDER_ID


@pytest.fixture
def make_order(session_factory):
    """Insert an order row directly, bypassing order creation."""
    counter = {"n": 0}

    def _make(
        status: OrderStatus = OrderStatus.PENDING,
        tenant_id: str = TENANT_ID,
        delivery_boy_id: Optional[str] = None,
        dine_in_tab_id: Optional[str] = None,
        subtotal: float = 100.0,
        cgst: float = 0.0,
        sgst: float = 0.0,
        items: Optional[list] = None,
        created_at: Optional[datetime] = None,
        delivery_type: DeliveryType = DeliveryType.DELIVERY,
    ) -> str:
        counter["n"] += 1
        created = created_at or utcnow()
        order = Order(
            customer_order_id=f"260314{counter['n']:04d}",
            tenant_id=tenant_id,
            business_type="restaurant",
            delivery_type=delivery_type,
            status=status,
            status_history=[{"status": status.value, "timestamp": created.isoformat(), "actor": "test"}],
            delivery_boy_id=delivery_boy_id,
            dine_in_tab_id=dine_in_tab_id,
            items=items if items is not None else [{"name": f"Dish {counter['n']}", "qty": 1,
                                                    "unitPrice": subtotal, "lineTotal": subtotal}],
            subtotal=subtotal,
            cgst=cgst,
            sgst=sgst,
            total_amount=round(subtotal + cgst + sgst, 2),
            created_at=created,
            updated_at=created,
        )
        with session_factory.begin() as session:
            session.add(order)
        return order.id

    return _make


@pytest.fixture
def make_tab(session_factory):
    """Insert a tab row directly."""
    counter = {"n": 0}

    def _make(
        table_id: str = "T1",
        tenant_id: str = TENANT_ID,
        status: TabStatus = TabStatus.ACTIVE,
        occupied_seats: int = 2,
        capacity: int = 4,
        created_at: Optional[datetime] = None,
        pending_amount: float = 0.0,
    ) -> str:
        counter["n"] += 1
        tab_id = f"tab_{counter['n']:012x}"
        created = created_at or utcnow()
        with session_factory.begin() as session:
            session.add(DineInTab(
                id=tab_id,
                tenant_id=tenant_id,
                table_id=table_id,
                capacity=capacity,
                occupied_seats=occupied_seats,
                status=status,
                token="a" * 32,
                total_amount=pending_amount,
                paid_amount=0.0,
                pending_amount=pending_amount,
                created_at=created,
                last_modified_at=created,
            ))
        return tab_id

    return _make


def get(session_factory, model, key):
    with session_factory() as session:
        return session.get(model, key)


def owner_actor(tenant_id: str = TENANT_ID) -> Actor:
    return Actor(uid="owner_1", role=Role.OWNER, tenant_id=tenant_id)


def auth_header(uid: str, role: Role, tenant_id: Optional[str] = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(uid, role, tenant_id)}"}


@pytest.fixture
def client(session_factory):
    app = create_app(session_factory)
    with TestClient(app) as test_client:
        yield test_client
