"""Order schemas for API validation."""
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from app.models.order import DeliveryType, PaymentMethod
from app.schemas.base import BaseSchema


class OrderItemIn(BaseSchema):
    """One line of an order. Prices are decided by the caller."""
    name: str = Field(..., min_length=1, max_length=200)
    qty: int = Field(..., gt=0, le=1000)
    unit_price: float = Field(..., ge=0)


class OrderCreate(BaseSchema):
    """Create new order."""
    tenant_id: str = Field(..., min_length=1, description="Restaurant or store id")
    delivery_type: DeliveryType
    items: List[OrderItemIn] = Field(..., min_length=1)
    subtotal: Optional[float] = Field(None, ge=0, description="Caller's subtotal, checked against the items")
    cgst: float = Field(0.0, ge=0)
    sgst: float = Field(0.0, ge=0)
    delivery_charge: float = Field(0.0, ge=0)
    payment_method: Optional[PaymentMethod] = None
    customer_name: Optional[str] = Field(None, max_length=128)
    customer_phone: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = Field(None, max_length=1000)

    # Dine-in: either an existing tab or the table to open one on
    dine_in_tab_id: Optional[str] = None
    table_id: Optional[str] = None
    table_capacity: Optional[int] = Field(None, gt=0, le=50)
    group_size: Optional[int] = Field(None, gt=0, le=50)

    idempotency_key: Optional[str] = Field(None, max_length=255)

    @field_validator('tenant_id')
    @classmethod
    def validate_tenant_id(cls, v):
        if not v.strip():
            raise ValueError('tenantId cannot be empty')
        return v.strip()


class OrderCreateResponse(BaseSchema):
    order_id: str
    customer_order_id: str
    status: str
    total_amount: float
    dine_in_tab_id: Optional[str] = None
    tab_token: Optional[str] = None
    order_token: Optional[str] = None

