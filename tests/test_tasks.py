from datetime import timedelta

import pytest

from app.models import DineInTab, IdempotencyKey, IdempotencyStatus, RateLimitCounter, Rider, RiderAvailability
from app.models.base import utcnow
from app.services.maintenance.retention import RetentionService
from app.tasks import maintenance_tasks
from tests.conftest import RIDER_ID, get


@pytest.fixture
def task_db(session_factory, monkeypatch):
    monkeypatch.setattr(maintenance_tasks, "get_session_factory", lambda: session_factory)
    return session_factory


def seed_guard_records(session_factory, now):
    with session_factory.begin() as session:
        session.add_all([
            RateLimitCounter(id="ip_old", namespace="ip", identity="old", minute="x", count=3,
                             created_at=now - timedelta(hours=200)),
            RateLimitCounter(id="ip_new", namespace="ip", identity="new", minute="y", count=1,
                             created_at=now - timedelta(hours=1)),
            IdempotencyKey(key="old-completed", status=IdempotencyStatus.COMPLETED,
                           reserved_at=now - timedelta(days=10), completed_at=now - timedelta(days=9)),
            IdempotencyKey(key="old-reserved-recently-completed", status=IdempotencyStatus.COMPLETED,
                           reserved_at=now - timedelta(days=10), completed_at=now - timedelta(days=1)),
            IdempotencyKey(key="abandoned", status=IdempotencyStatus.RESERVED,
                           reserved_at=now - timedelta(days=8)),
            IdempotencyKey(key="fresh", status=IdempotencyStatus.RESERVED, reserved_at=now),
        ])


def test_retention_keeps_recent_records(session_factory, clock):
    seed_guard_records(session_factory, clock.now)

    result = RetentionService(session_factory, rate_limit_hours=168, idempotency_days=7, clock=clock).run()

    assert result == {"rate_limits_deleted": 1, "idempotency_keys_deleted": 2}
    assert get(session_factory, RateLimitCounter, "ip_old") is None
    assert get(session_factory, RateLimitCounter, "ip_new") is not None
    assert get(session_factory, IdempotencyKey, "old-reserved-recently-completed") is not None
    assert get(session_factory, IdempotencyKey, "fresh") is not None


def test_retention_task(task_db):
    seed_guard_records(task_db, utcnow())

    assert maintenance_tasks.cleanup_retention() == {"rate_limits_deleted": 1, "idempotency_keys_deleted": 2}


def test_stale_tab_task_defaults_to_dry_run(task_db, restaurant, make_tab):
    tab_id = make_tab(created_at=utcnow() - timedelta(days=2))

    summary = maintenance_tasks.cleanup_stale_tabs_for_all_tenants()

    assert summary["tabs_found"] == 1
    assert summary["stale_tabs_deleted"] == 0
    assert get(task_db, DineInTab, tab_id) is not None

    applied = maintenance_tasks.cleanup_stale_tabs_for_all_tenants(dry_run=False)
    assert applied["stale_tabs_deleted"] == 1


def test_availability_audit_task_repairs(task_db, rider):
    with task_db.begin() as session:
        session.get(Rider, RIDER_ID).availability = RiderAvailability.ON_DELIVERY

    report = maintenance_tasks.audit_rider_availability()

    assert report["repaired"] == 1
    assert maintenance_tasks.audit_rider_availability(repair=False)["mismatches"] == []


def test_task_errors_propagate(monkeypatch):
    def broken():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(maintenance_tasks, "get_session_factory", broken)

    with pytest.raises(RuntimeError):
        maintenance_tasks.cleanup_retention()
