"""
Database models package.

This file makes it easy to import all models at once.
It also ensures all models are registered on the declarative metadata.
"""

from .base import Base
from .business import Business, BusinessType, BusinessTypeProfile, BUSINESS_TYPE_PROFILES
from .order import Order, OrderStatus, PaymentStatus, PaymentMethod, DeliveryType
from .table import RestaurantTable, TableState, DineInTab, TabStatus
from .idempotency import IdempotencyKey, IdempotencyStatus
from .rate_limit import RateLimitCounter
from .rider import Rider, RiderRosterEntry, RiderAvailability

__all__ = [
    "Base",
    "Business",
    "BusinessType",
    "BusinessTypeProfile",
    "BUSINESS_TYPE_PROFILES",
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "DeliveryType",
    "RestaurantTable",
    "TableState",
    "DineInTab",
    "TabStatus",
    "IdempotencyKey",
    "IdempotencyStatus",
    "RateLimitCounter",
    "Rider",
    "RiderRosterEntry",
    "RiderAvailability",
]
