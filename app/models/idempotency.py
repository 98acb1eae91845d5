"""Idempotency key records for order creation."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, str_enum, utcnow


class IdempotencyStatus(str, Enum):
    RESERVED = "reserved"
    COMPLETED = "completed"
    FAILED = "failed"


class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[IdempotencyStatus] = mapped_column(str_enum(IdempotencyStatus), nullable=False)
    # "metadata" is reserved on declarative classes
    request_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    response_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reserved_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
