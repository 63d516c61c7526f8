"""Infrastructure models package exports."""
from .base import Base, metadata
from .shop import (
    MembershipModel,
    OrderModel,
    PaymentChannelModel,
    ProductKeyModel,
    ProductModel,
)

__all__ = [
    "Base",
    "metadata",
    "MembershipModel",
    "OrderModel",
    "PaymentChannelModel",
    "ProductKeyModel",
    "ProductModel",
]
