"""Order record creation on the orders table."""
from datetime import datetime
from typing import Any, Dict, List, Optional
import random

from sqlalchemy.orm import Session

from app.models.order import DeliveryType, Order, OrderStatus, PaymentMethod, PaymentStatus


def generate_customer_order_id(now: datetime) -> str:
    """Short human-facing id: ``YYMMDD`` plus four random digits."""
    return f"{now.strftime('%y%m%d')}{random.randint(0, 9999):04d}"


def insert_order(
    session: Session,
    *,
    tenant_id: str,
    business_type: str,
    delivery_type: DeliveryType,
    items: List[Dict[str, Any]],
    subtotal: float,
    cgst: float,
    sgst: float,
    delivery_charge: float,
    total_amount: float,
    created_by: str,
    now: datetime,
    payment_method: Optional[PaymentMethod] = None,
    dine_in_tab_id: Optional[str] = None,
    table_id: Optional[str] = None,
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    notes: Optional[str] = None,
) -> Order:
    order = Order(
        customer_order_id=generate_customer_order_id(now),
        tenant_id=tenant_id,
        business_type=business_type,
        delivery_type=delivery_type,
        status_history=[],
        items=items,
        subtotal=subtotal,
        cgst=cgst,
        sgst=sgst,
        delivery_charge=delivery_charge,
        total_amount=total_amount,
        payment_status=PaymentStatus.PENDING,
        payment_method=payment_method,
        dine_in_tab_id=dine_in_tab_id,
        table_id=table_id,
        customer_name=customer_name,
        customer_phone=customer_phone,
        notes=notes,
        created_at=now,
        updated_at=now,
    )
    order.record_status(OrderStatus.PENDING, actor=created_by, at=now)
    session.add(order)
    session.flush()
    return order

