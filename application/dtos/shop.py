"""
Shop DTOs (Pydantic v2) for order and membership endpoints.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_serializer

from domain.shop.entity import Membership, Order


class CreateOrder(BaseModel):
    product_id: int = Field(gt=0)
    payment_method: Optional[str] = Field(default=None, max_length=50)


class OrderView(BaseModel):
    order_no: str
    product_id: int
    amount: Decimal
    status: str
    payment_method: Optional[str] = None
    product_key: Optional[str] = None
    remark: Optional[str] = None
    created_at: Optional[datetime] = None
    payment_time: Optional[datetime] = None

    @field_serializer("amount")
    def _serialize_amount(self, amount: Decimal) -> str:
        return f"{amount:.2f}"

    @classmethod
    def from_entity(cls, order: Order) -> "OrderView":
        return cls(
            order_no=order.order_no,
            product_id=order.product_id,
            amount=order.amount,
            status=order.status.value,
            payment_method=order.payment_method,
            product_key=order.product_key,
            remark=order.remark,
            created_at=order.created_at,
            payment_time=order.payment_time,
        )


class MembershipView(BaseModel):
    type: str
    start_date: datetime
    end_date: datetime
    active: bool

    @classmethod
    def from_entity(cls, membership: Membership) -> "MembershipView":
        return cls(
            type=membership.type.value,
            start_date=membership.start_date,
            end_date=membership.end_date,
            active=membership.active,
        )
