"""Rider delivery state machine.

Every rider move is one row of ``TRANSITIONS``. A batch of orders is
checked in full (existence, ownership, exact predecessor state) before
anything is written, and the writes share one transaction, so a batch is
applied to every order or to none.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.config.database import run_in_transaction
from app.core.exceptions import ForbiddenError, InvalidStateTransition, NotFoundError, ValidationError
from app.models.base import utcnow
from app.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from app.models.rider import RiderAvailability
from app.services.delivery.rider_availability import RiderAvailabilityService

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Customer unreachable"


class RiderAction(str, Enum):
    REACHED_RESTAURANT = "reached_restaurant"
    PICK_UP = "pick_up"
    START_DELIVERY = "start_delivery"
    MARK_DELIVERED = "mark_delivered"
    ATTEMPT_DELIVERY = "attempt_delivery"
    MARK_FAILED = "mark_failed"
    RETURN_ORDER = "return_order"


TRANSITIONS: Dict[tuple, OrderStatus] = {
    (OrderStatus.DISPATCHED, RiderAction.REACHED_RESTAURANT): OrderStatus.REACHED_RESTAURANT,
    (OrderStatus.REACHED_RESTAURANT, RiderAction.PICK_UP): OrderStatus.PICKED_UP,
    (OrderStatus.PICKED_UP, RiderAction.START_DELIVERY): OrderStatus.ON_THE_WAY,
    (OrderStatus.ON_THE_WAY, RiderAction.MARK_DELIVERED): OrderStatus.DELIVERED,
    (OrderStatus.ON_THE_WAY, RiderAction.ATTEMPT_DELIVERY): OrderStatus.DELIVERY_ATTEMPTED,
    (OrderStatus.DELIVERY_ATTEMPTED, RiderAction.MARK_FAILED): OrderStatus.FAILED_DELIVERY,
    (OrderStatus.FAILED_DELIVERY, RiderAction.RETURN_ORDER): OrderStatus.RETURNED_TO_RESTAURANT,
}

# Reaching one of these may free the rider
RELEASING_STATUSES = (OrderStatus.DELIVERED, OrderStatus.RETURNED_TO_RESTAURANT)


def predecessor_of(action: RiderAction) -> OrderStatus:
    for (current, candidate), _ in TRANSITIONS.items():
        if candidate == action:
            return current
    raise ValueError(f"No transition for action {action}")


def action_between(current: OrderStatus, new_status: OrderStatus) -> Optional[RiderAction]:
    for (from_status, action), to_status in TRANSITIONS.items():
        if from_status == current and to_status == new_status:
            return action
    return None


def normalize_order_ids(order_ids: Optional[Iterable[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for order_id in order_ids or []:
        cleaned = str(order_id or "").strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    if not seen:
        raise ValidationError("Order IDs array is required.")
    return list(seen)


@dataclass
class TransitionResult:
    order_ids: List[str]
    status: OrderStatus
    rider_availability: Optional[RiderAvailability] = None
    tenant_ids: List[str] = field(default_factory=list)


class DeliveryStateMachine:
    def __init__(
        self,
        session_factory: sessionmaker,
        availability: Optional[RiderAvailabilityService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.availability = availability or RiderAvailabilityService(session_factory)
        self.clock = clock

    def apply_action(
        self,
        order_ids: Iterable[str],
        rider_id: str,
        action: RiderAction,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move every order in the batch one step along the delivery path.

        Args:
            order_ids: Orders assigned to the rider
            rider_id: Caller uid; must equal each order's ``delivery_boy_id``
            action: The rider's move
            reason: Optional note; failures default to "Customer unreachable"

        Raises:
            NotFoundError, ForbiddenError, InvalidStateTransition: Nothing is written
        """
        action = RiderAction(action)
        target = TRANSITIONS[(predecessor_of(action), action)]
        return self._transition(
            order_ids,
            rider_id,
            target,
            lambda current: TRANSITIONS.get((current, action)),
            reason,
        )

    def update_order_status(
        self,
        order_ids: Iterable[str],
        rider_id: str,
        new_status: str,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Generic form: legal iff some rider action leads from the current status to ``new_status``."""
        try:
            target = OrderStatus(str(new_status or "").strip().lower())
        except ValueError as e:
            raise ValidationError("Invalid status provided for rider update.") from e
        if target not in TRANSITIONS.values():
            raise ValidationError("Invalid status provided for rider update.")

        return self._transition(
            order_ids,
            rider_id,
            target,
            lambda current: target if action_between(current, target) else None,
            reason,
        )

    def _transition(
        self,
        order_ids: Iterable[str],
        rider_id: str,
        target: OrderStatus,
        resolve: Callable[[OrderStatus], Optional[OrderStatus]],
        reason: Optional[str],
    ) -> TransitionResult:
        ids = normalize_order_ids(order_ids)
        reason = (reason or "").strip() or None

        def _apply(session: Session) -> List[str]:
            orders = {
                o.id: o for o in session.execute(select(Order).where(Order.id.in_(ids))).scalars()
            }

            missing = [order_id for order_id in ids if order_id not in orders]
            if missing:
                raise NotFoundError(f"Order {missing[0]} not found.")

            for order_id in ids:
                if orders[order_id].delivery_boy_id != rider_id:
                    raise ForbiddenError(f"Order {order_id} is not assigned to you.")

            for order_id in ids:
                order = orders[order_id]
                if resolve(OrderStatus(order.status)) != target:
                    raise InvalidStateTransition(
                        f"Order {order_id} cannot move to {target.value}. "
                        f"Current status: {order.status.value}",
                        order_id=order_id,
                        current_status=order.status.value,
                    )

            now = self.clock()
            for order_id in ids:
                order = orders[order_id]
                order.record_status(target, actor=rider_id, at=now, reason=reason)
                if target == OrderStatus.FAILED_DELIVERY:
                    order.failure_reason = reason or DEFAULT_FAILURE_REASON
                    order.failure_at = now
                elif target == OrderStatus.RETURNED_TO_RESTAURANT:
                    order.returned_at = now
                elif target == OrderStatus.DELIVERED:
                    order.delivered_at = now
            return sorted({orders[order_id].tenant_id for order_id in ids})

        tenant_ids = run_in_transaction(self.session_factory, _apply, operation=f"rider {rider_id} -> {target.value}")
        logger.info(
            f"Rider {rider_id} moved {len(ids)} orders to {target.value}",
            extra={"rider_id": rider_id, "order_ids": ids},
        )

        if target in RELEASING_STATUSES and not self.availability.has_active_orders(rider_id, exclude_order_ids=ids):
            availability = RiderAvailability.ONLINE
        else:
            availability = RiderAvailability.ON_DELIVERY
        self.availability.set_rider_availability(rider_id, tenant_ids, availability)

        return TransitionResult(
            order_ids=ids,
            status=target,
            rider_availability=availability,
            tenant_ids=tenant_ids,
        )

    def update_payment_status(
        self,
        order_id: str,
        rider_id: str,
        payment_status: str,
        payment_method: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a payment the rider collected on one of their orders."""
        order_id = str(order_id or "").strip()
        if not order_id or not payment_status:
            raise ValidationError("Order ID and payment status required.")
        try:
            new_payment_status = PaymentStatus(str(payment_status).strip().lower())
        except ValueError as e:
            raise ValidationError(f"Invalid payment status: {payment_status}") from e
        requested_method = str(payment_method or "").strip().lower()

        def _update(session: Session) -> Dict[str, Any]:
            order = session.get(Order, order_id)
            if order is None:
                raise NotFoundError("Order not found.")
            if order.delivery_boy_id != rider_id:
                raise ForbiddenError(f"Order {order_id} is not assigned to you.")

            method_value = requested_method or (order.payment_method.value if order.payment_method else "online")
            try:
                order.payment_method = PaymentMethod(method_value)
            except ValueError as e:
                raise ValidationError(f"Invalid payment method: {method_value}") from e
            order.payment_status = new_payment_status
            if new_payment_status == PaymentStatus.PAID:
                order.paid_at = self.clock()
            return {
                "order_id": order.id,
                "payment_status": order.payment_status.value,
                "payment_method": order.payment_method.value,
            }

        result = run_in_transaction(self.session_factory, _update, operation=f"rider payment update {order_id}")
        logger.info(f"Rider {rider_id} set payment of order {order_id} to {result['payment_status']}")
        return result
