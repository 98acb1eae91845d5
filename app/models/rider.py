"""Rider profiles and per-restaurant roster entries."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, generate_uuid, str_enum, utcnow


class RiderAvailability(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    ON_DELIVERY = "on_delivery"


class Rider(Base):
    """Rider profile; id is the rider's auth uid."""
    __tablename__ = "riders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    availability: Mapped[RiderAvailability] = mapped_column(
        str_enum(RiderAvailability), default=RiderAvailability.OFFLINE, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class RiderRosterEntry(Base):
    """A restaurant's copy of a rider's availability."""
    __tablename__ = "rider_roster"
    __table_args__ = (UniqueConstraint("tenant_id", "rider_id", name="uq_rider_roster_tenant_rider"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    rider_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    availability: Mapped[RiderAvailability] = mapped_column(
        str_enum(RiderAvailability), default=RiderAvailability.OFFLINE, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
