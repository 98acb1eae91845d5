"""Dine-in tab allocation, billing and settlement."""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import logging
import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.config.database import run_in_transaction
from app.config.settings import settings
from app.core.auth import Actor, require_tenant_staff
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.base import utcnow
from app.models.order import (
    Order,
    PaymentMethod,
    PaymentStatus,
    SETTLEMENT_EXCLUDED_STATUSES,
    TAB_BILLABLE_STATUSES,
)
from app.models.table import DineInTab, RestaurantTable, TableState, TabStatus, table_key

logger = logging.getLogger(__name__)


@dataclass
class TabAllocation:
    tab_id: str
    token: str
    occupied_seats: int
    available_seats: int
    capacity: int
    existed: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_tab_id() -> str:
    return f"tab_{secrets.token_hex(6)}"


def new_tab_token() -> str:
    return secrets.token_hex(16)


def table_state_for(pax: int, max_capacity: int) -> TableState:
    if pax <= 0:
        return TableState.AVAILABLE
    if pax >= max_capacity:
        return TableState.FULL
    return TableState.OCCUPIED


def money(value: float) -> float:
    return round(value, 2)


def find_open_tab(session: Session, tenant_id: str, table_id: str) -> Optional[DineInTab]:
    return session.execute(
        select(DineInTab).where(DineInTab.open_table_key == table_key(tenant_id, table_id))
    ).scalar_one_or_none()


def adjust_table_pax(session: Session, tenant_id: str, table_id: str, delta: int) -> Optional[RestaurantTable]:
    """Apply a seat change to the registered table, if there is one."""
    table = session.get(RestaurantTable, (tenant_id, table_id))
    if table is None:
        return None
    table.current_pax = max(0, table.current_pax + delta)
    table.state = table_state_for(table.current_pax, table.max_capacity)
    return table


def attach_order_to_tab(session: Session, tab_id: str, tenant_id: str, amount: float) -> DineInTab:
    """Add an order's total to its tab inside the caller's transaction."""
    tab = session.get(DineInTab, tab_id)
    if tab is None or tab.tenant_id != tenant_id:
        raise NotFoundError(f"Tab {tab_id} not found")
    if tab.status != TabStatus.ACTIVE:
        raise ConflictError(f"Tab {tab_id} is {tab.status.value} and cannot take new orders")
    tab.total_amount = money(tab.total_amount + amount)
    tab.pending_amount = money(tab.pending_amount + amount)
    return tab


class TabService:
    """Service for dine-in tabs. Every operation is one database transaction."""

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    def create_or_join_tab(
        self,
        tenant_id: str,
        table_id: str,
        capacity: int,
        group_size: int,
        actor_name: Optional[str] = None,
    ) -> TabAllocation:
        """
        Return the table's open tab or create one for the arriving group.

        Two callers racing on the same table both get the same tab: the
        loser's insert violates the open-tab unique key, the transaction is
        retried and the retry finds the winner's tab.

        Args:
            tenant_id: Restaurant id
            table_id: Table within the restaurant
            capacity: Seats at the table
            group_size: Guests arriving now
            actor_name: Name recorded as the tab's creator

        Returns:
            The allocation; ``existed`` tells whether the tab was already open

        Raises:
            ValidationError: On missing fields or a group that does not fit
            ConflictError: If the open tab is locked for payment
        """
        if not tenant_id or not table_id:
            raise ValidationError("tenantId and tableId are required")
        if capacity is None or capacity < 1:
            raise ValidationError("capacity must be at least 1")

        def _allocate(session: Session) -> TabAllocation:
            tab = find_open_tab(session, tenant_id, table_id)
            if tab is not None:
                if tab.status == TabStatus.LOCKED_FOR_PAYMENT:
                    raise ConflictError("Table is settling its bill. Please wait for payment to finish.")
                return TabAllocation(
                    tab_id=tab.id,
                    token=tab.token,
                    occupied_seats=tab.occupied_seats,
                    available_seats=tab.available_seats,
                    capacity=tab.capacity,
                    existed=True,
                )

            if group_size is None or group_size < 1:
                raise ValidationError("groupSize must be at least 1")
            if group_size > capacity:
                raise ValidationError(f"Group of {group_size} exceeds table capacity of {capacity}")

            now = self.clock()
            tab = DineInTab(
                id=new_tab_id(),
                tenant_id=tenant_id,
                table_id=table_id,
                capacity=capacity,
                occupied_seats=group_size,
                status=TabStatus.ACTIVE,
                token=new_tab_token(),
                total_amount=0.0,
                paid_amount=0.0,
                pending_amount=0.0,
                created_by=actor_name,
                created_at=now,
                last_modified_at=now,
            )
            session.add(tab)
            session.flush()
            adjust_table_pax(session, tenant_id, table_id, group_size)
            logger.info(f"Opened tab {tab.id} on table {table_id} for tenant {tenant_id} ({group_size} pax)")
            return TabAllocation(
                tab_id=tab.id,
                token=tab.token,
                occupied_seats=tab.occupied_seats,
                available_seats=tab.available_seats,
                capacity=tab.capacity,
                existed=False,
            )

        return run_in_transaction(
            self.session_factory,
            _allocate,
            retries=settings.STORE_TRANSACTION_RETRIES,
            operation=f"create tab {tenant_id}/{table_id}",
            retry_on_integrity_error=True,
        )

    def get_table_status(self, tenant_id: str, table_id: str) -> Dict[str, Any]:
        """Summary of the table's open tab, if any."""
        if not tenant_id or not table_id:
            raise ValidationError("tenantId and tableId are required")

        with self.session_factory() as session:
            tab = find_open_tab(session, tenant_id, table_id)
            table = session.get(RestaurantTable, (tenant_id, table_id))
            status: Dict[str, Any] = {
                "has_active_tab": tab is not None,
                "table_state": table.state.value if table else None,
                "current_pax": table.current_pax if table else None,
                "max_capacity": table.max_capacity if table else None,
            }
            if tab is not None:
                status.update({
                    "tab_id": tab.id,
                    "tab_status": tab.status.value,
                    "capacity": tab.capacity,
                    "occupied_seats": tab.occupied_seats,
                    "available_seats": tab.available_seats,
                    "total_amount": tab.total_amount,
                    "pending_amount": tab.pending_amount,
                })
            return status

    def join_tab(self, tab_id: str, token: str, customer_name: Optional[str] = None) -> TabAllocation:
        """Add one guest to an open tab holding the shared token."""

        def _join(session: Session) -> TabAllocation:
            tab = session.get(DineInTab, tab_id)
            if tab is None:
                raise NotFoundError(f"Tab {tab_id} not found")
            if not token or not secrets.compare_digest(tab.token, token):
                raise ForbiddenError("Invalid tab token")
            if tab.status == TabStatus.LOCKED_FOR_PAYMENT:
                raise ConflictError("Tab is locked for payment")
            if tab.status != TabStatus.ACTIVE:
                raise ValidationError(f"Tab is {tab.status.value}")
            if tab.available_seats <= 0:
                raise ValidationError("Table is full")

            tab.occupied_seats += 1
            tab.last_modified_at = self.clock()
            adjust_table_pax(session, tab.tenant_id, tab.table_id, 1)
            logger.info(f"{customer_name or 'Guest'} joined tab {tab.id} ({tab.occupied_seats}/{tab.capacity})")
            return TabAllocation(
                tab_id=tab.id,
                token=tab.token,
                occupied_seats=tab.occupied_seats,
                available_seats=tab.available_seats,
                capacity=tab.capacity,
                existed=True,
            )

        return run_in_transaction(self.session_factory, _join, operation=f"join tab {tab_id}")

    def get_tab_status(self, tab_id: str, tenant_id: str) -> Dict[str, Any]:
        """
        Aggregate the bill of a tab.

        Orders that are still on the bill are merged in creation order; the
        latest order's status is reported as the tab's status.

        Raises:
            NotFoundError: If no billable order references the tab
        """
        with self.session_factory() as session:
            orders: List[Order] = list(session.execute(
                select(Order)
                .where(
                    Order.dine_in_tab_id == tab_id,
                    Order.tenant_id == tenant_id,
                    Order.status.in_(TAB_BILLABLE_STATUSES),
                )
                .order_by(Order.created_at, Order.id)
            ).scalars())
            if not orders:
                raise NotFoundError(f"No orders found for tab {tab_id}")

            tab = session.get(DineInTab, tab_id)
            items: List[Dict[str, Any]] = []
            for order in orders:
                items.extend(order.items or [])

            return {
                "tab": {
                    "id": tab_id,
                    "table_id": tab.table_id if tab else orders[-1].table_id,
                    "status": orders[-1].status.value,
                    "tab_status": tab.status.value if tab else None,
                    "order_count": len(orders),
                    "paid_amount": tab.paid_amount if tab else 0.0,
                    "pending_amount": tab.pending_amount if tab else None,
                },
                "aggregated": {
                    "items": items,
                    "subtotal": money(sum(o.subtotal for o in orders)),
                    "cgst": money(sum(o.cgst for o in orders)),
                    "sgst": money(sum(o.sgst for o in orders)),
                    "grand_total": money(sum(o.total_amount for o in orders)),
                },
                "orders": [
                    {
                        "id": o.id,
                        "customer_order_id": o.customer_order_id,
                        "status": o.status.value,
                        "items": o.items,
                        "total_amount": o.total_amount,
                        "created_at": o.created_at,
                    }
                    for o in orders
                ],
            }

    def mark_tab_paid(
        self,
        tab_id: str,
        tenant_id: str,
        payment_details: Optional[Dict[str, Any]],
        actor: Actor,
    ) -> Dict[str, Any]:
        """
        Settle a tab: mark its orders paid, close it and free the table.

        Everything happens in one transaction, so a failure leaves no order
        paid on a still-open tab.

        Raises:
            ForbiddenError: If the actor does not manage the tenant
            NotFoundError: If the tab has no settleable orders
        """
        require_tenant_staff(actor, tenant_id)
        details = dict(payment_details or {})
        method = _payment_method(details.get("method"))

        def _settle(session: Session) -> Dict[str, Any]:
            now = self.clock()
            tab = session.get(DineInTab, tab_id)
            if tab is not None and tab.tenant_id != tenant_id:
                tab = None

            orders: List[Order] = list(session.execute(
                select(Order).where(
                    Order.dine_in_tab_id == tab_id,
                    Order.tenant_id == tenant_id,
                    Order.status.not_in(SETTLEMENT_EXCLUDED_STATUSES),
                )
            ).scalars())
            if not orders:
                raise NotFoundError(f"No orders found for tab {tab_id}")

            if tab is not None and tab.status == TabStatus.CLOSED:
                # Repeated settlement: the table may already host a newer tab
                table = session.get(RestaurantTable, (tenant_id, tab.table_id))
                logger.info(f"Tab {tab_id} already settled, nothing to do")
                return {
                    "tab_id": tab_id,
                    "orders_paid": len(orders),
                    "total_paid": tab.paid_amount,
                    "table_state": table.state.value if table is not None else None,
                }

            for order in orders:
                if order.payment_status == PaymentStatus.PAID:
                    continue
                order.payment_status = PaymentStatus.PAID
                if method is not None:
                    order.payment_method = method
                order.payment_details = details
                order.paid_at = now

            orders_total = money(sum(o.total_amount for o in orders))
            table_state = None
            if tab is not None:
                if not tab.total_amount:
                    tab.total_amount = orders_total
                tab.status = TabStatus.CLOSED
                tab.paid_amount = tab.total_amount
                tab.pending_amount = 0.0
                tab.closed_at = now
                tab.payment_details = details
                table = adjust_table_pax(session, tenant_id, tab.table_id, -tab.occupied_seats)
                if table is not None:
                    table.state = TableState.NEEDS_CLEANING
                    table_state = table.state.value

            logger.info(f"Tab {tab_id} settled by {actor.uid}: {len(orders)} orders, {orders_total}")
            return {
                "tab_id": tab_id,
                "orders_paid": len(orders),
                "total_paid": tab.paid_amount if tab is not None else orders_total,
                "table_state": table_state,
            }

        return run_in_transaction(self.session_factory, _settle, operation=f"settle tab {tab_id}")

    def initiate_payment(self, tab_id: str, token: str, payment_method: Optional[str] = None) -> Dict[str, Any]:
        """Lock the tab while the bill is being paid."""

        def _lock(session: Session) -> Dict[str, Any]:
            tab = self._tab_for_token(session, tab_id, token)
            if tab.status == TabStatus.LOCKED_FOR_PAYMENT:
                raise ConflictError("Payment is already in progress for this tab")
            if tab.status != TabStatus.ACTIVE:
                raise ValidationError(f"Tab is {tab.status.value}")
            if tab.pending_amount <= 0:
                raise ValidationError("Nothing is pending on this tab")

            tab.status = TabStatus.LOCKED_FOR_PAYMENT
            tab.payment_method = payment_method
            tab.payment_locked_at = self.clock()
            logger.info(f"Tab {tab_id} locked for payment ({payment_method or 'unspecified'})")
            return {"tab_id": tab.id, "status": tab.status.value, "amount_due": tab.pending_amount}

        return run_in_transaction(self.session_factory, _lock, operation=f"lock tab {tab_id}")

    def unlock_payment(self, tab_id: str, token: str, reason: Optional[str] = None) -> Dict[str, Any]:
        """Release a payment lock, e.g. after the guest cancels checkout."""

        def _unlock(session: Session) -> Dict[str, Any]:
            tab = self._tab_for_token(session, tab_id, token)
            if tab.status != TabStatus.LOCKED_FOR_PAYMENT:
                raise ValidationError("Tab is not locked for payment")
            tab.status = TabStatus.ACTIVE
            tab.payment_method = None
            tab.payment_locked_at = None
            logger.info(f"Tab {tab_id} unlocked: {reason or 'no reason given'}")
            return {"tab_id": tab.id, "status": tab.status.value, "amount_due": tab.pending_amount}

        return run_in_transaction(self.session_factory, _unlock, operation=f"unlock tab {tab_id}")

    def _tab_for_token(self, session: Session, tab_id: str, token: str) -> DineInTab:
        tab = session.get(DineInTab, tab_id)
        if tab is None:
            raise NotFoundError(f"Tab {tab_id} not found")
        if not token or not secrets.compare_digest(tab.token, token):
            raise ForbiddenError("Invalid tab token")
        return tab


def _payment_method(value: Optional[str]) -> Optional[PaymentMethod]:
    if not value:
        return None
    try:
        return PaymentMethod(str(value).lower())
    except ValueError as e:
        raise ValidationError(f"Unsupported payment method: {value}") from e
