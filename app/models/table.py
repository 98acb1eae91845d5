"""Restaurant tables and the dine-in tabs that occupy them."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Float, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, str_enum, utcnow


class TableState(str, Enum):
    """Table status enumeration."""
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    FULL = "full"
    NEEDS_CLEANING = "needs_cleaning"


class TabStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    LOCKED_FOR_PAYMENT = "locked_for_payment"
    CLOSED = "closed"


OPEN_TAB_STATUSES = (TabStatus.ACTIVE, TabStatus.LOCKED_FOR_PAYMENT)


class RestaurantTable(Base):
    """A registered table of a restaurant tenant."""
    __tablename__ = "restaurant_tables"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    table_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    max_capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    current_pax: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    state: Mapped[TableState] = mapped_column(
        str_enum(TableState), default=TableState.AVAILABLE, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class DineInTab(Base):
    """
    A running bill for one table.

    ``open_table_key`` is ``"{tenant_id}:{table_id}"`` while the tab is
    active or locked for payment and NULL otherwise, so the unique index
    allows at most one open tab per table.
    """
    __tablename__ = "dine_in_tabs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    table_id: Mapped[str] = mapped_column(String(64), nullable=False)
    open_table_key: Mapped[Optional[str]] = mapped_column(String(160), unique=True, nullable=True)

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    occupied_seats: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[TabStatus] = mapped_column(str_enum(TabStatus), default=TabStatus.ACTIVE, nullable=False)
    token: Mapped[str] = mapped_column(String(32), nullable=False)

    total_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    paid_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    pending_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    created_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_modified_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payment_locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    payment_details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    @property
    def available_seats(self) -> int:
        return max(0, self.capacity - self.occupied_seats)


def table_key(tenant_id: str, table_id: str) -> str:
    return f"{tenant_id}:{table_id}"


@event.listens_for(DineInTab, "before_insert")
@event.listens_for(DineInTab, "before_update")
def _sync_open_table_key(mapper, connection, target: DineInTab) -> None:
    # Bulk UPDATE statements skip this hook; tabs are only changed through the ORM.
    if TabStatus(target.status) in OPEN_TAB_STATUSES:
        target.open_table_key = table_key(target.tenant_id, target.table_id)
    else:
        target.open_table_key = None
