"""Shop domain exports."""
from .entity import (
    Membership,
    MembershipType,
    KeyStatus,
    Order,
    OrderStatus,
    PaymentChannelConfig,
    Product,
    ProductKey,
    ProductType,
)
from .service import (
    OrderSettlementService,
    SettlementConflict,
    SettlementOutcome,
    SettlementResult,
    generate_order_no,
)

__all__ = [
    "Membership",
    "MembershipType",
    "KeyStatus",
    "Order",
    "OrderStatus",
    "PaymentChannelConfig",
    "Product",
    "ProductKey",
    "ProductType",
    "OrderSettlementService",
    "SettlementConflict",
    "SettlementOutcome",
    "SettlementResult",
    "generate_order_no",
]
