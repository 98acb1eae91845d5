import re

import pytest

from app.config.settings import settings
from app.core.exceptions import NotFoundError, RateLimitExceeded, ValidationError
from app.models import Business, DineInTab, IdempotencyKey, IdempotencyStatus, Order, OrderStatus
from app.schemas.order import OrderCreate
from app.services.business.order_service import OrderService
from app.services.dine_in.tab_service import TabService
from app.services.guards.idempotency import IdempotencyGuard
from app.services.guards.rate_limiter import RateLimiter
from tests.conftest import TENANT_ID, get


@pytest.fixture
def orders(session_factory, clock):
    return OrderService(
        session_factory,
        rate_limiter=RateLimiter(session_factory, clock=clock),
        idempotency=IdempotencyGuard(session_factory, clock=clock),
        tabs=TabService(session_factory, clock=clock),
        clock=clock,
    )


def order_request(**overrides) -> OrderCreate:
    body = {
        "tenantId": TENANT_ID,
        "deliveryType": "delivery",
        "items": [
            {"name": "Butter Chicken", "qty": 2, "unitPrice": 180.0},
            {"name": "Naan", "qty": 3, "unitPrice": 30.0},
        ],
        "cgst": 11.25,
        "sgst": 11.25,
        "customerName": "Meera",
    }
    body.update(overrides)
    return OrderCreate.model_validate(body)


def count_orders(session_factory) -> int:
    with session_factory() as session:
        return session.query(Order).count()


def test_creates_order_and_completes_key(orders, restaurant, session_factory, clock):
    payload = orders.create_order(order_request(subtotal=450.0), "key-1")

    assert payload["status"] == "pending"
    assert payload["totalAmount"] == 472.5
    assert re.fullmatch(r"260314\d{4}", payload["customerOrderId"])
    assert payload["orderToken"] is None

    order = get(session_factory, Order, payload["orderId"])
    assert order.status == OrderStatus.PENDING
    assert order.items[0] == {"name": "Butter Chicken", "qty": 2, "unitPrice": 180.0, "lineTotal": 360.0}
    assert order.status_history == [{"status": "pending", "timestamp": clock.now.isoformat(), "actor": "Meera"}]

    key = get(session_factory, IdempotencyKey, "key-1")
    assert key.status == IdempotencyStatus.COMPLETED
    assert key.order_id == payload["orderId"]
    assert key.response_payload == payload


def test_repeated_key_returns_the_same_order(orders, restaurant, session_factory):
    first = orders.create_order(order_request(), "key-1")
    second = orders.create_order(order_request(notes="double tap"), "key-1")

    assert second == first
    assert count_orders(session_factory) == 1


def test_key_can_come_from_the_body(orders, restaurant, session_factory):
    payload = orders.create_order(order_request(idempotencyKey="body-key"), None)

    assert get(session_factory, IdempotencyKey, "body-key").order_id == payload["orderId"]


def test_missing_key_is_rejected(orders, restaurant, session_factory):
    with pytest.raises(ValidationError):
        orders.create_order(order_request(), None)

    assert count_orders(session_factory) == 0


def test_tenant_rate_limit(orders, restaurant, monkeypatch):
    monkeypatch.setattr(settings, "ORDER_RATE_LIMIT_PER_MINUTE", 2)

    orders.create_order(order_request(), "key-1")
    orders.create_order(order_request(), "key-2")
    with pytest.raises(RateLimitExceeded) as exc_info:
        orders.create_order(order_request(), "key-3")

    assert exc_info.value.retry_after == 55


def test_subtotal_must_match_items(orders, restaurant, session_factory):
    with pytest.raises(ValidationError, match="does not match"):
        orders.create_order(order_request(subtotal=400.0), "key-1")

    assert get(session_factory, IdempotencyKey, "key-1").status == IdempotencyStatus.FAILED


def test_unknown_business_fails_key_then_retry_succeeds(orders, session_factory):
    with pytest.raises(NotFoundError):
        orders.create_order(order_request(), "key-1")

    key = get(session_factory, IdempotencyKey, "key-1")
    assert key.status == IdempotencyStatus.FAILED
    assert "not found" in key.error

    with session_factory.begin() as session:
        session.add(Business(id=TENANT_ID, name="Spice Route", business_type="restaurant"))

    payload = orders.create_order(order_request(), "key-1")
    assert get(session_factory, IdempotencyKey, "key-1").status == IdempotencyStatus.COMPLETED
    assert get(session_factory, Order, payload["orderId"]) is not None


def test_dine_in_opens_tab_and_accumulates(orders, restaurant, session_factory):
    first = orders.create_order(
        order_request(deliveryType="dine-in", tableId="T1", tableCapacity=4, groupSize=2), "key-1"
    )

    assert first["dineInTabId"].startswith("tab_")
    assert len(first["tabToken"]) == 32

    second = orders.create_order(
        order_request(deliveryType="dine-in", dineInTabId=first["dineInTabId"],
                      items=[{"name": "Kulfi", "qty": 1, "unitPrice": 60.0}], cgst=0, sgst=0),
        "key-2",
    )

    tab = get(session_factory, DineInTab, first["dineInTabId"])
    assert tab.total_amount == 532.5
    assert tab.pending_amount == 532.5
    assert get(session_factory, Order, second["orderId"]).table_id == "T1"


def test_order_on_closed_tab_is_rejected(orders, restaurant, make_tab, session_factory):
    from app.core.exceptions import ConflictError
    from app.models import TabStatus

    tab_id = make_tab(status=TabStatus.CLOSED)

    with pytest.raises(ConflictError):
        orders.create_order(order_request(deliveryType="dine-in", dineInTabId=tab_id), "key-1")
    assert count_orders(session_factory) == 0


@pytest.mark.parametrize(
    "business_type, delivery_type",
    [("shop", "dine-in"), ("street_vendor", "delivery")],
)
def test_business_type_limits_fulfilment(orders, session_factory, business_type, delivery_type):
    with session_factory.begin() as session:
        session.add(Business(id=TENANT_ID, name="Corner", business_type=business_type))

    with pytest.raises(ValidationError, match="not available"):
        orders.create_order(order_request(deliveryType=delivery_type, tableId="T1"), "key-1")


def test_street_vendor_gets_order_token(orders, session_factory):
    with session_factory.begin() as session:
        session.add(Business(id=TENANT_ID, name="Chaat Cart", business_type="street-vendor"))

    payload = orders.create_order(order_request(deliveryType="takeaway"), "key-1")

    assert payload["orderToken"] == payload["customerOrderId"][-4:]
