"""Rider request schemas."""
from typing import List, Optional

from pydantic import Field

from app.schemas.base import BaseSchema


class RiderOrdersRequest(BaseSchema):
    """Batch of orders for one rider move."""
    order_ids: List[str] = Field(..., min_length=1, max_length=50)
    reason: Optional[str] = Field(None, max_length=500)


class UpdateOrderStatusRequest(RiderOrdersRequest):
    new_status: str = Field(..., min_length=1)


class UpdatePaymentStatusRequest(BaseSchema):
    order_id: str = Field(..., min_length=1)
    payment_status: str = Field(..., min_length=1)
    payment_method: Optional[str] = None


class TransitionResponse(BaseSchema):
    success: bool = True
    message: str
    order_ids: List[str]
    status: str
    rider_availability: Optional[str] = None


class PaymentStatusResponse(BaseSchema):
    success: bool = True
    message: str = "Payment status updated."
    order_id: str
    payment_status: str
    payment_method: str
