"""
Schemas package.

This package contains the Pydantic models for request/response validation:
- base: camelCase base schema
- order: order creation
- table: dine-in tabs, settlement and stale-tab cleanup
- rider: rider delivery moves and payment updates
"""

from app.schemas.base import BaseSchema
from app.schemas.order import OrderCreate, OrderCreateResponse, OrderItemIn
from app.schemas.rider import RiderOrdersRequest, TransitionResponse
from app.schemas.table import CreateTabRequest, TabAllocationResponse, TabStatusResponse

__all__ = [
    "BaseSchema",
    "OrderCreate",
    "OrderCreateResponse",
    "OrderItemIn",
    "RiderOrdersRequest",
    "TransitionResponse",
    "CreateTabRequest",
    "TabAllocationResponse",
    "TabStatusResponse",
]
