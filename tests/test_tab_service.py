import re
import threading

import pytest

from app.config.settings import settings
from app.core.exceptions import ConflictError, ForbiddenError, ValidationError
from app.models import DineInTab, RestaurantTable, TableState, TabStatus
from app.services.dine_in import tab_service as tab_service_module
from app.services.dine_in.tab_service import TabService
from tests.conftest import TENANT_ID, get


@pytest.fixture
def tabs(session_factory, clock):
    return TabService(session_factory, clock=clock)


def test_creates_tab_for_new_group(tabs, restaurant, session_factory):
    allocation = tabs.create_or_join_tab(TENANT_ID, "T1", 4, 3, actor_name="Asha")

    assert not allocation.existed
    assert re.fullmatch(r"tab_[0-9a-f]{12}", allocation.tab_id)
    assert re.fullmatch(r"[0-9a-f]{32}", allocation.token)
    assert (allocation.occupied_seats, allocation.available_seats, allocation.capacity) == (3, 1, 4)

    tab = get(session_factory, DineInTab, allocation.tab_id)
    assert tab.status == TabStatus.ACTIVE
    assert tab.open_table_key == f"{TENANT_ID}:T1"
    assert (tab.total_amount, tab.paid_amount, tab.pending_amount) == (0.0, 0.0, 0.0)

    table = get(session_factory, RestaurantTable, (TENANT_ID, "T1"))
    assert table.current_pax == 3
    assert table.state == TableState.OCCUPIED


def test_open_tab_is_returned_unchanged(tabs, restaurant):
    first = tabs.create_or_join_tab(TENANT_ID, "T1", 4, 2)
    second = tabs.create_or_join_tab(TENANT_ID, "T1", 4, 2)

    assert second.existed
    assert second.tab_id == first.tab_id
    assert second.token == first.token
    assert second.occupied_seats == 2


@pytest.mark.parametrize("group_size", [0, 5])
def test_group_must_fit_the_table(tabs, restaurant, group_size):
    with pytest.raises(ValidationError):
        tabs.create_or_join_tab(TENANT_ID, "T1", 4, group_size)


def test_missing_table_is_rejected(tabs):
    with pytest.raises(ValidationError):
        tabs.create_or_join_tab(TENANT_ID, "", 4, 2)


def test_locked_tab_blocks_new_arrivals(tabs, make_tab):
    make_tab(status=TabStatus.LOCKED_FOR_PAYMENT)

    with pytest.raises(ConflictError):
        tabs.create_or_join_tab(TENANT_ID, "T1", 4, 2)


def test_closed_tab_frees_the_table_for_a_new_one(tabs, make_tab):
    closed_id = make_tab(status=TabStatus.CLOSED)

    allocation = tabs.create_or_join_tab(TENANT_ID, "T1", 4, 2)

    assert not allocation.existed
    assert allocation.tab_id != closed_id


def test_losing_creator_retries_and_joins_winner(tabs, restaurant, monkeypatch):
    winner = tabs.create_or_join_tab(TENANT_ID, "T1", 4, 2)

    real_find = tab_service_module.find_open_tab
    calls = {"n": 0}

    def stale_read(session, tenant_id, table_id):
        # First read misses, as if it happened before the winner committed
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find(session, tenant_id, table_id)

    monkeypatch.setattr(tab_service_module, "find_open_tab", stale_read)

    loser = tabs.create_or_join_tab(TENANT_ID, "T1", 4, 3)

    assert calls["n"] == 2
    assert loser.existed
    assert loser.tab_id == winner.tab_id


def test_concurrent_creators_share_one_tab(session_factory, restaurant, monkeypatch):
    # Writers that find the database locked back off and retry
    monkeypatch.setattr(settings, "STORE_TRANSACTION_RETRIES", 10)
    barrier = threading.Barrier(2)
    results, errors = [], []

    def create(group_size):
        service = TabService(session_factory)
        barrier.wait()
        try:
            results.append(service.create_or_join_tab(TENANT_ID, "T1", 4, group_size))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=create, args=(size,)) for size in (2, 3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    assert sorted(r.existed for r in results) == [False, True]
    assert results[0].tab_id == results[1].tab_id

    with session_factory() as session:
        open_tabs = session.query(DineInTab).filter(DineInTab.open_table_key.isnot(None)).all()
    assert len(open_tabs) == 1


def test_join_tab_adds_one_seat(tabs, restaurant, session_factory):
    allocation = tabs.create_or_join_tab(TENANT_ID, "T1", 4, 2)

    joined = tabs.join_tab(allocation.tab_id, allocation.token, "Ravi")

    assert joined.occupied_seats == 3
    assert joined.available_seats == 1
    assert get(session_factory, RestaurantTable, (TENANT_ID, "T1")).current_pax == 3


def test_join_tab_checks_token_and_space(tabs, restaurant):
    allocation = tabs.create_or_join_tab(TENANT_ID, "T2", 2, 2)

    with pytest.raises(ForbiddenError):
        tabs.join_tab(allocation.tab_id, "0" * 32)
    with pytest.raises(ValidationError):
        tabs.join_tab(allocation.tab_id, allocation.token)


def test_table_status_reports_open_tab(tabs, restaurant):
    assert tabs.get_table_status(TENANT_ID, "T1")["has_active_tab"] is False

    allocation = tabs.create_or_join_tab(TENANT_ID, "T1", 4, 2)
    status = tabs.get_table_status(TENANT_ID, "T1")

    assert status["has_active_tab"] is True
    assert status["tab_id"] == allocation.tab_id
    assert status["table_state"] == "occupied"


def test_payment_lock_and_unlock(tabs, make_tab, session_factory):
    empty_tab = make_tab(table_id="T2")
    with pytest.raises(ValidationError):
        tabs.initiate_payment(empty_tab, "a" * 32)

    tab_id = make_tab(table_id="T1", pending_amount=250.0)
    locked = tabs.initiate_payment(tab_id, "a" * 32, "upi")
    assert locked["status"] == "locked_for_payment"
    assert locked["amount_due"] == 250.0

    with pytest.raises(ConflictError):
        tabs.initiate_payment(tab_id, "a" * 32)
    with pytest.raises(ForbiddenError):
        tabs.unlock_payment(tab_id, "b" * 32)

    unlocked = tabs.unlock_payment(tab_id, "a" * 32, "guest cancelled")
    assert unlocked["status"] == "active"
    assert get(session_factory, DineInTab, tab_id).open_table_key == f"{TENANT_ID}:T1"
