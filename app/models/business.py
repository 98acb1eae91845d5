"""Business (tenant) model and per-type behaviour profiles."""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, utcnow


class BusinessType(str, enum.Enum):
    """Kinds of tenant the order flow distinguishes."""
    RESTAURANT = "restaurant"
    STORE = "store"
    STREET_VENDOR = "street-vendor"

    @classmethod
    def parse(cls, value: str) -> "BusinessType":
        normalized = (value or "").strip().lower()
        return cls(BUSINESS_TYPE_ALIASES.get(normalized, normalized))


BUSINESS_TYPE_ALIASES: Dict[str, str] = {
    "shop": "store",
    "street_vendor": "street-vendor",
}


@dataclass(frozen=True)
class BusinessTypeProfile:
    supports_dine_in: bool
    supports_delivery: bool
    issues_order_token: bool


BUSINESS_TYPE_PROFILES: Dict[BusinessType, BusinessTypeProfile] = {
    BusinessType.RESTAURANT: BusinessTypeProfile(
        supports_dine_in=True, supports_delivery=True, issues_order_token=False
    ),
    BusinessType.STORE: BusinessTypeProfile(
        supports_dine_in=False, supports_delivery=True, issues_order_token=False
    ),
    BusinessType.STREET_VENDOR: BusinessTypeProfile(
        supports_dine_in=False, supports_delivery=False, issues_order_token=True
    ),
}


class Business(Base):
    """Tenant record; id doubles as the tenant id on orders and tabs."""
    __tablename__ = "businesses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Raw value as captured at signup; legacy spellings are normalized by `kind`
    business_type: Mapped[str] = mapped_column(String(32), default=BusinessType.RESTAURANT.value, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def kind(self) -> BusinessType:
        return BusinessType.parse(self.business_type)

    @property
    def profile(self) -> BusinessTypeProfile:
        return BUSINESS_TYPE_PROFILES[self.kind]
