"""Order processing business logic."""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import logging

from sqlalchemy.orm import Session, sessionmaker

from app.config.database import run_in_transaction
from app.config.settings import settings
from app.core.auth import Actor
from app.core.exceptions import NotFoundError, RateLimitExceeded, ValidationError
from app.models.base import utcnow
from app.models.business import Business
from app.models.order import DeliveryType
from app.schemas.order import OrderCreate, OrderCreateResponse
from app.services.business.order_store import insert_order
from app.services.dine_in.tab_service import TabService, attach_order_to_tab
from app.services.guards.idempotency import IdempotencyGuard
from app.services.guards.rate_limiter import RateLimiter, TENANT_NAMESPACE

logger = logging.getLogger(__name__)

# Allowed gap between the caller's subtotal and the sum of its lines
SUBTOTAL_TOLERANCE = 0.01


class OrderService:
    """Service for creating orders - the single entry point for new order records."""

    def __init__(
        self,
        session_factory: sessionmaker,
        rate_limiter: Optional[RateLimiter] = None,
        idempotency: Optional[IdempotencyGuard] = None,
        tabs: Optional[TabService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.rate_limiter = rate_limiter or RateLimiter(session_factory)
        self.idempotency = idempotency or IdempotencyGuard(session_factory)
        self.tabs = tabs or TabService(session_factory)
        self.clock = clock

    def create_order(
        self,
        order_data: OrderCreate,
        idempotency_key: Optional[str],
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        """
        Create a new order exactly once per idempotency key.

        Args:
            order_data: Validated order request
            idempotency_key: Header value, falling back to the body field
            actor: Verified caller, if the request carried a token

        Returns:
            The response payload; a repeated key returns the stored payload unchanged

        Raises:
            RateLimitExceeded: If the tenant is over its per-minute order limit
            RequestInProgressError: If the same key is being processed right now
            ValidationError: If the key is missing or the order is malformed
            NotFoundError: If the tenant does not exist
        """
        tenant_id = order_data.tenant_id
        key = idempotency_key or order_data.idempotency_key

        decision = self.rate_limiter.check(tenant_id, settings.ORDER_RATE_LIMIT_PER_MINUTE, TENANT_NAMESPACE)
        if not decision.allowed:
            raise RateLimitExceeded("Too many orders for this restaurant. Please retry shortly.",
                                    retry_after=decision.retry_after)

        reservation = self.idempotency.reserve(key, {
            "tenant_id": tenant_id,
            "delivery_type": order_data.delivery_type.value,
            "actor": actor.uid if actor else None,
        })
        if reservation.is_duplicate:
            logger.info(f"Duplicate order request for key {key}, returning order {reservation.order_id}")
            return reservation.response_payload or {"orderId": reservation.order_id}

        try:
            payload = self._create(order_data, key, actor)
        except Exception as e:
            self.idempotency.fail(key, str(e))
            raise

        logger.info(
            f"Order {payload['orderId']} created for tenant {tenant_id}",
            extra={"tenant_id": tenant_id},
        )
        return payload

    def _create(self, order_data: OrderCreate, key: str, actor: Optional[Actor]) -> Dict[str, Any]:
        tenant_id = order_data.tenant_id
        business_type, profile = self._business_profile(tenant_id)

        if order_data.delivery_type == DeliveryType.DINE_IN and not profile.supports_dine_in:
            raise ValidationError(f"Dine-in is not available for {business_type.value} businesses")
        if order_data.delivery_type == DeliveryType.DELIVERY and not profile.supports_delivery:
            raise ValidationError(f"Delivery is not available for {business_type.value} businesses")

        items, subtotal = self._price_items(order_data)
        total_amount = round(subtotal + order_data.cgst + order_data.sgst + order_data.delivery_charge, 2)
        created_by = actor.uid if actor else (order_data.customer_name or "guest")

        tab_id = order_data.dine_in_tab_id
        tab_token = None
        if order_data.delivery_type == DeliveryType.DINE_IN and not tab_id:
            if not order_data.table_id:
                raise ValidationError("Dine-in orders need a tableId or dineInTabId")
            allocation = self.tabs.create_or_join_tab(
                tenant_id,
                order_data.table_id,
                order_data.table_capacity or order_data.group_size or 1,
                order_data.group_size or 1,
                actor_name=order_data.customer_name,
            )
            tab_id = allocation.tab_id
            tab_token = allocation.token

        def _store(session: Session) -> Dict[str, Any]:
            now = self.clock()
            table_id = order_data.table_id
            if tab_id:
                tab = attach_order_to_tab(session, tab_id, tenant_id, total_amount)
                table_id = table_id or tab.table_id

            order = insert_order(
                session,
                tenant_id=tenant_id,
                business_type=business_type.value,
                delivery_type=order_data.delivery_type,
                items=items,
                subtotal=subtotal,
                cgst=order_data.cgst,
                sgst=order_data.sgst,
                delivery_charge=order_data.delivery_charge,
                total_amount=total_amount,
                created_by=created_by,
                now=now,
                payment_method=order_data.payment_method,
                dine_in_tab_id=tab_id,
                table_id=table_id,
                customer_name=order_data.customer_name,
                customer_phone=order_data.customer_phone,
                notes=order_data.notes,
            )
            payload = OrderCreateResponse(
                order_id=order.id,
                customer_order_id=order.customer_order_id,
                status=order.status.value,
                total_amount=order.total_amount,
                dine_in_tab_id=tab_id,
                tab_token=tab_token,
                order_token=order.customer_order_id[-4:] if profile.issues_order_token else None,
            ).model_dump(by_alias=True, mode="json")
            # Committed together with the order, so a stored order always has its key completed
            self.idempotency.complete(key, order.id, response_payload=payload, session=session)
            return payload

        return run_in_transaction(self.session_factory, _store, operation=f"create order for {tenant_id}")

    def _business_profile(self, tenant_id: str):
        with self.session_factory() as session:
            business = session.get(Business, tenant_id)
            if business is None or not business.is_active:
                raise NotFoundError(f"Business {tenant_id} not found")
            return business.kind, business.profile

    @staticmethod
    def _price_items(order_data: OrderCreate):
        items: List[Dict[str, Any]] = []
        subtotal = 0.0
        for item in order_data.items:
            line_total = round(item.qty * item.unit_price, 2)
            items.append({
                "name": item.name,
                "qty": item.qty,
                "unitPrice": item.unit_price,
                "lineTotal": line_total,
            })
            subtotal += line_total
        subtotal = round(subtotal, 2)

        if order_data.subtotal is not None and abs(order_data.subtotal - subtotal) > SUBTOTAL_TOLERANCE:
            raise ValidationError(
                f"Subtotal {order_data.subtotal} does not match the items ({subtotal})"
            )
        return items, subtotal
