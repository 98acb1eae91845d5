"""Order creation endpoints."""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header

from app.core.auth import Actor
from app.core.dependencies import get_current_actor_optional, get_order_service
from app.schemas.order import OrderCreate
from app.services.business.order_service import OrderService

router = APIRouter()


@router.post("/create")
def create_order(
    order_data: OrderCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    actor: Optional[Actor] = Depends(get_current_actor_optional),
    order_service: OrderService = Depends(get_order_service),
) -> Any:
    """
    Create a new order.

    The idempotency key comes from the `Idempotency-Key` header or the
    `idempotencyKey` body field. Repeating a completed key returns the
    original response body unchanged.
    """
    return order_service.create_order(order_data, idempotency_key, actor)
