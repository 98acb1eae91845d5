"""Reconciliation of dine-in tabs abandoned without orders."""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from app.config.database import run_in_transaction
from app.config.settings import settings
from app.models.base import utcnow
from app.models.business import Business
from app.models.order import Order
from app.models.table import DineInTab, RestaurantTable, TabStatus
from app.services.dine_in.tab_service import table_state_for

logger = logging.getLogger(__name__)

SWEEPABLE_STATUSES = (TabStatus.ACTIVE, TabStatus.INACTIVE)
SEATED_STATUSES = (TabStatus.ACTIVE, TabStatus.INACTIVE, TabStatus.LOCKED_FOR_PAYMENT)


class StaleTabSweeper:
    """
    Finds active or inactive tabs with no order inside the trailing window
    and, unless running dry, deletes them and rewrites table occupancy from
    the tabs that remain.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        window_hours: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.window_hours = window_hours or settings.STALE_TAB_WINDOW_HOURS
        self.clock = clock

    def _find_stale(self, session: Session, tenant_id: str, cutoff: datetime) -> List[Tuple[DineInTab, Optional[datetime]]]:
        last_order = (
            select(func.max(Order.created_at))
            .where(Order.dine_in_tab_id == DineInTab.id)
            .scalar_subquery()
        )
        rows = session.execute(
            select(DineInTab, last_order)
            .where(
                DineInTab.tenant_id == tenant_id,
                DineInTab.status.in_(SWEEPABLE_STATUSES),
                DineInTab.created_at < cutoff,
            )
            .order_by(DineInTab.created_at)
        ).all()
        stale = []
        for tab, last_order_at in rows:
            if last_order_at is None or last_order_at < cutoff:
                stale.append((tab, last_order_at))
        return stale

    @staticmethod
    def _describe(tab: DineInTab, last_order_at: Optional[datetime]) -> Dict[str, Any]:
        return {
            "tab_id": tab.id,
            "table_id": tab.table_id,
            "status": tab.status.value,
            "occupied_seats": tab.occupied_seats,
            "created_at": tab.created_at,
            "last_order_at": last_order_at,
        }

    def cleanup_stale_tabs(self, tenant_id: str, dry_run: bool = True) -> Dict[str, Any]:
        """
        Sweep one tenant.

        Args:
            tenant_id: Restaurant to sweep
            dry_run: Report only, change nothing

        Returns:
            ``{tabs_found, stale_tabs_deleted, tables_updated, details, dry_run}``
        """
        cutoff = self.clock() - timedelta(hours=self.window_hours)

        if dry_run:
            with self.session_factory() as session:
                stale = self._find_stale(session, tenant_id, cutoff)
                details = [self._describe(tab, last) for tab, last in stale]
            logger.info(f"Stale tab dry run for {tenant_id}: {len(details)} stale tabs")
            return {
                "tabs_found": len(details),
                "stale_tabs_deleted": 0,
                "tables_updated": 0,
                "details": details,
                "dry_run": True,
            }

        def _sweep(session: Session) -> Dict[str, Any]:
            stale = self._find_stale(session, tenant_id, cutoff)
            details = [self._describe(tab, last) for tab, last in stale]
            for tab, _ in stale:
                session.delete(tab)
            session.flush()

            seated = dict(session.execute(
                select(DineInTab.table_id, func.coalesce(func.sum(DineInTab.occupied_seats), 0))
                .where(DineInTab.tenant_id == tenant_id, DineInTab.status.in_(SEATED_STATUSES))
                .group_by(DineInTab.table_id)
            ).all())

            tables_updated = 0
            tables = session.execute(
                select(RestaurantTable).where(RestaurantTable.tenant_id == tenant_id)
            ).scalars()
            for table in tables:
                pax = int(seated.get(table.table_id, 0))
                state = table_state_for(pax, table.max_capacity)
                if table.current_pax != pax or table.state != state:
                    table.current_pax = pax
                    table.state = state
                    tables_updated += 1

            return {
                "tabs_found": len(details),
                "stale_tabs_deleted": len(details),
                "tables_updated": tables_updated,
                "details": details,
                "dry_run": False,
            }

        result = run_in_transaction(self.session_factory, _sweep, operation=f"stale tab sweep {tenant_id}")
        logger.info(
            f"Stale tab sweep for {tenant_id}: deleted {result['stale_tabs_deleted']} tabs, "
            f"updated {result['tables_updated']} tables"
        )
        return result

    def cleanup_all_tenants(self, dry_run: bool = True) -> Dict[str, Any]:
        """Sweep every tenant that has a business record or an open tab."""
        with self.session_factory() as session:
            tenant_ids = set(session.execute(select(Business.id)).scalars())
            tenant_ids.update(session.execute(
                select(DineInTab.tenant_id).where(DineInTab.status.in_(SWEEPABLE_STATUSES)).distinct()
            ).scalars())

        summary: Dict[str, Any] = {"tenants": 0, "tabs_found": 0, "stale_tabs_deleted": 0, "tables_updated": 0}
        for tenant_id in sorted(tenant_ids):
            result = self.cleanup_stale_tabs(tenant_id, dry_run=dry_run)
            summary["tenants"] += 1
            summary["tabs_found"] += result["tabs_found"]
            summary["stale_tabs_deleted"] += result["stale_tabs_deleted"]
            summary["tables_updated"] += result["tables_updated"]
        return summary
