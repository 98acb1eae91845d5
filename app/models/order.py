"""Order record shared by customers, owners and riders."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, generate_uuid, str_enum, utcnow


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY = "ready"
    DISPATCHED = "dispatched"
    REACHED_RESTAURANT = "reached_restaurant"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    DELIVERY_ATTEMPTED = "delivery_attempted"
    FAILED_DELIVERY = "failed_delivery"
    RETURNED_TO_RESTAURANT = "returned_to_restaurant"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """Payment method enumeration."""
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    ONLINE = "online"


class DeliveryType(str, Enum):
    DELIVERY = "delivery"
    DINE_IN = "dine-in"
    CAR = "car"
    TAKEAWAY = "takeaway"


# Orders counted on an open dine-in bill
TAB_BILLABLE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
)

# Orders left out of dine-in settlement
SETTLEMENT_EXCLUDED_STATUSES = (
    OrderStatus.REJECTED,
    OrderStatus.PICKED_UP,
    OrderStatus.CANCELLED,
)

# Orders that keep a rider busy
RIDER_ACTIVE_STATUSES = (
    OrderStatus.DISPATCHED,
    OrderStatus.REACHED_RESTAURANT,
    OrderStatus.PICKED_UP,
    OrderStatus.ON_THE_WAY,
    OrderStatus.DELIVERY_ATTEMPTED,
    OrderStatus.FAILED_DELIVERY,
)


class Order(Base):
    """Order record. Never deleted; status only moves forward."""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    customer_order_id: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    business_type: Mapped[str] = mapped_column(String(32), nullable=False)
    delivery_type: Mapped[DeliveryType] = mapped_column(str_enum(DeliveryType), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        str_enum(OrderStatus), default=OrderStatus.PENDING, index=True, nullable=False
    )
    status_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    delivery_boy_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    dine_in_tab_id: Mapped[Optional[str]] = mapped_column(String(32), index=True, nullable=True)
    table_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    subtotal: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cgst: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    sgst: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    delivery_charge: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        str_enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(str_enum(PaymentMethod), nullable=True)
    payment_details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    customer_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    failure_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    failure_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    returned_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def record_status(self, status: OrderStatus, actor: str, at: datetime,
                      reason: Optional[str] = None, notes: Optional[str] = None) -> None:
        """Set status and append a history entry."""
        entry: Dict[str, Any] = {"status": status.value, "timestamp": at.isoformat(), "actor": actor}
        if reason:
            entry["reason"] = reason
        if notes:
            entry["notes"] = notes
        self.status = status
        # JSON columns are not mutation-tracked; assign a new list
        self.status_history = list(self.status_history or []) + [entry]
