"""
Shop domain events.

Collected by the domain services and logged by the application layer once the
surrounding transaction has committed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class ShopEvent:
    order_no: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderPaid(ShopEvent):
    user_id: int = 0
    amount_fen: int = 0
    payment_method: str = ""
    transaction_id: str = ""


@dataclass
class ProductKeyAssigned(ShopEvent):
    product_id: int = 0
    key_id: int = 0


@dataclass
class KeyPoolExhausted(ShopEvent):
    """Order was paid but the key pool was empty; needs manual fulfilment."""
    product_id: int = 0


@dataclass
class MembershipExtended(ShopEvent):
    user_id: int = 0
    days: int = 0
    end_date: Optional[datetime] = None
    created: bool = False
