from datetime import timedelta

import pytest

from app.models import DineInTab, RestaurantTable, TableState, TabStatus
from app.services.dine_in.stale_tabs import StaleTabSweeper
from tests.conftest import OTHER_TENANT_ID, TENANT_ID, get


@pytest.fixture
def sweeper(session_factory, clock):
    return StaleTabSweeper(session_factory, window_hours=24, clock=clock)


@pytest.fixture
def floor(restaurant, make_tab, make_order, session_factory, clock):
    now = clock.now
    old = now - timedelta(hours=30)
    tabs = {
        "abandoned": make_tab(table_id="T1", status=TabStatus.INACTIVE, occupied_seats=2, created_at=old),
        "quiet": make_tab(table_id="T2", occupied_seats=2, capacity=2, created_at=old),
        "busy": make_tab(table_id="T1", occupied_seats=3, created_at=old),
        "new": make_tab(table_id="T3", occupied_seats=1, created_at=now - timedelta(hours=1)),
        "elsewhere": make_tab(table_id="T1", tenant_id=OTHER_TENANT_ID, created_at=old),
    }
    make_order(dine_in_tab_id=tabs["quiet"], created_at=now - timedelta(hours=26))
    make_order(dine_in_tab_id=tabs["busy"], created_at=now - timedelta(hours=1))

    with session_factory.begin() as session:
        session.get(RestaurantTable, (TENANT_ID, "T1")).current_pax = 5
        t2 = session.get(RestaurantTable, (TENANT_ID, "T2"))
        t2.current_pax = 2
        t2.state = TableState.FULL
    return tabs


def test_dry_run_reports_without_changes(sweeper, floor, session_factory):
    result = sweeper.cleanup_stale_tabs(TENANT_ID)

    assert result["dry_run"] is True
    assert result["tabs_found"] == 2
    assert result["stale_tabs_deleted"] == 0
    assert result["tables_updated"] == 0
    assert {d["tab_id"] for d in result["details"]} == {floor["abandoned"], floor["quiet"]}
    quiet = next(d for d in result["details"] if d["tab_id"] == floor["quiet"])
    assert quiet["last_order_at"] is not None

    assert get(session_factory, DineInTab, floor["abandoned"]) is not None
    assert get(session_factory, RestaurantTable, (TENANT_ID, "T1")).current_pax == 5


def test_apply_deletes_stale_tabs_and_rebuilds_occupancy(sweeper, floor, session_factory):
    result = sweeper.cleanup_stale_tabs(TENANT_ID, dry_run=False)

    assert result["dry_run"] is False
    assert result["stale_tabs_deleted"] == 2
    assert result["tables_updated"] == 2

    assert get(session_factory, DineInTab, floor["abandoned"]) is None
    assert get(session_factory, DineInTab, floor["quiet"]) is None
    for kept in ("busy", "new", "elsewhere"):
        assert get(session_factory, DineInTab, floor[kept]) is not None

    t1 = get(session_factory, RestaurantTable, (TENANT_ID, "T1"))
    assert (t1.current_pax, t1.state) == (3, TableState.OCCUPIED)
    t2 = get(session_factory, RestaurantTable, (TENANT_ID, "T2"))
    assert (t2.current_pax, t2.state) == (0, TableState.AVAILABLE)


def test_second_sweep_finds_nothing(sweeper, floor):
    sweeper.cleanup_stale_tabs(TENANT_ID, dry_run=False)

    result = sweeper.cleanup_stale_tabs(TENANT_ID, dry_run=False)

    assert result["tabs_found"] == 0
    assert result["tables_updated"] == 0


def test_sweep_all_tenants(sweeper, floor):
    summary = sweeper.cleanup_all_tenants(dry_run=True)

    assert summary["tenants"] == 2
    assert summary["tabs_found"] == 3
    assert summary["stale_tabs_deleted"] == 0
