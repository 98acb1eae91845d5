"""Dine-in table and tab schemas for API validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from app.schemas.base import BaseSchema


class CreateTabRequest(BaseSchema):
    """Open a tab, or get the one already open on the table."""
    tenant_id: str = Field(..., min_length=1)
    table_id: str = Field(..., min_length=1, max_length=64, description="Table identifier (e.g., 'A1', '5')")
    capacity: int = Field(..., gt=0, le=50, description="Maximum number of seats (1-50)")
    group_size: int = Field(..., gt=0, le=50)
    customer_name: Optional[str] = Field(None, max_length=128)

    @field_validator('table_id')
    @classmethod
    def validate_table_id(cls, v):
        """Ensure table id doesn't contain invalid characters."""
        if not v.strip():
            raise ValueError('Table id cannot be empty')
        import re
        if not re.match(r'^[A-Za-z0-9\s\-_]+$', v):
            raise ValueError('Table id can only contain letters, numbers, spaces, hyphens and underscores')
        return v.strip()


class TabAllocationResponse(BaseSchema):
    tab_id: str
    token: str
    occupied_seats: int
    available_seats: int
    capacity: int
    existed: bool


class TableStatusResponse(BaseSchema):
    has_active_tab: bool
    table_state: Optional[str] = None
    current_pax: Optional[int] = None
    max_capacity: Optional[int] = None
    tab_id: Optional[str] = None
    tab_status: Optional[str] = None
    capacity: Optional[int] = None
    occupied_seats: Optional[int] = None
    available_seats: Optional[int] = None
    total_amount: Optional[float] = None
    pending_amount: Optional[float] = None


class JoinTableRequest(BaseSchema):
    tab_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    customer_name: Optional[str] = Field(None, max_length=128)


class TabInfo(BaseSchema):
    id: str
    table_id: Optional[str] = None
    status: str
    tab_status: Optional[str] = None
    order_count: int
    paid_amount: float = 0.0
    pending_amount: Optional[float] = None


class AggregatedBill(BaseSchema):
    items: List[Dict[str, Any]]
    subtotal: float
    cgst: float
    sgst: float
    grand_total: float


class TabOrder(BaseSchema):
    id: str
    customer_order_id: str
    status: str
    items: List[Dict[str, Any]] = []
    total_amount: float
    created_at: datetime


class TabStatusResponse(BaseSchema):
    tab: TabInfo
    aggregated: AggregatedBill
    orders: List[TabOrder]


class PaymentLockRequest(BaseSchema):
    tab_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    payment_method: Optional[str] = Field(None, max_length=32)
    reason: Optional[str] = Field(None, max_length=200)


class PaymentLockResponse(BaseSchema):
    tab_id: str
    status: str
    amount_due: float


class MarkPaidRequest(BaseSchema):
    tab_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    payment_details: Dict[str, Any] = {}


class MarkPaidResponse(BaseSchema):
    tab_id: str
    orders_paid: int
    total_paid: float
    table_state: Optional[str] = None


class CleanupStaleTabsRequest(BaseSchema):
    tenant_id: str = Field(..., min_length=1)
    dry_run: bool = True


class StaleTabDetail(BaseSchema):
    tab_id: str
    table_id: str
    status: str
    occupied_seats: int
    created_at: datetime
    last_order_at: Optional[datetime] = None


class CleanupStaleTabsResponse(BaseSchema):
    tabs_found: int
    stale_tabs_deleted: int
    tables_updated: int
    details: List[StaleTabDetail]
    dry_run: bool
