from . import (
    dine_in,
    orders,
    owner,
    rider,
)

__all__ = [
    "dine_in",
    "orders",
    "owner",
    "rider",
]
