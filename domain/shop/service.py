"""
商城领域服务 - 订单结算（pending → paid）与资源发放
"""
from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from .entity import Membership, Order, OrderStatus
from .events import KeyPoolExhausted, MembershipExtended, OrderPaid, ProductKeyAssigned
from .repository import (
    MembershipRepository,
    OrderRepository,
    ProductKeyRepository,
    ProductRepository,
)

_ORDER_NO_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_no(now: Optional[datetime] = None) -> str:
    """商户订单号：ORD + YYYYMMDD + 8 位大写字母数字"""
    current = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_ORDER_NO_ALPHABET) for _ in range(8))
    return f"ORD{current:%Y%m%d}{suffix}"


class SettlementOutcome(str, Enum):
    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"
    ORDER_NOT_FOUND = "order_not_found"
    AMOUNT_MISMATCH = "amount_mismatch"
    ORDER_NOT_PAYABLE = "order_not_payable"


@dataclass(frozen=True)
class SettlementResult:
    outcome: SettlementOutcome
    order_no: str
    key_required: bool = False
    key_assigned: bool = False
    key_value: Optional[str] = None
    membership_end: Optional[datetime] = None
    expected_fen: Optional[int] = None
    paid_fen: Optional[int] = None

    @property
    def acknowledged(self) -> bool:
        """厂商应收到成功应答（已结算或幂等重放）"""
        return self.outcome in (SettlementOutcome.SETTLED, SettlementOutcome.ALREADY_SETTLED)

    @property
    def needs_operator(self) -> bool:
        """需要人工介入：业务拒绝，或已支付但卡密池为空"""
        if self.outcome == SettlementOutcome.SETTLED:
            return self.key_required and not self.key_assigned
        return self.outcome != SettlementOutcome.ALREADY_SETTLED


class SettlementConflict(Exception):
    """最终的条件写入失败：订单已被并发结算，整个事务需回滚"""

    def __init__(self, order_no: str):
        self.order_no = order_no
        super().__init__(f"order {order_no} was settled concurrently")


class OrderSettlementService:
    """
    订单结算领域服务

    职责：
    1. 幂等门：已 paid/completed 的订单直接返回，不做任何写入
    2. 金额校验：按分比较，不一致则拒绝
    3. 卡密发放：通过仓储的原子条件更新领取，池空时仍结算但标记
    4. 会员开通/叠加续费
    5. 以条件写入把订单置为 paid，并收集领域事件

    调用方负责提供事务边界（所有仓储共享同一个事务）。
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        product_repository: ProductRepository,
        key_repository: ProductKeyRepository,
        membership_repository: MembershipRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.order_repository = order_repository
        self.product_repository = product_repository
        self.key_repository = key_repository
        self.membership_repository = membership_repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.events: List = []

    async def settle(
        self,
        order_no: str,
        transaction_id: str,
        paid_amount_fen: int,
        method_label: str,
        *,
        vendor_label: Optional[str] = None,
    ) -> SettlementResult:
        order = await self.order_repository.get_by_order_no(order_no, for_update=True)
        if order is None:
            return SettlementResult(SettlementOutcome.ORDER_NOT_FOUND, order_no, paid_fen=paid_amount_fen)

        if order.is_settled:
            return SettlementResult(SettlementOutcome.ALREADY_SETTLED, order_no)

        if order.status != OrderStatus.PENDING:
            return SettlementResult(
                SettlementOutcome.ORDER_NOT_PAYABLE,
                order_no,
                expected_fen=order.amount_fen,
                paid_fen=paid_amount_fen,
            )

        if paid_amount_fen != order.amount_fen:
            return SettlementResult(
                SettlementOutcome.AMOUNT_MISMATCH,
                order_no,
                expected_fen=order.amount_fen,
                paid_fen=paid_amount_fen,
            )

        now = self._clock()
        product = await self.product_repository.get_by_id(order.product_id)

        key_required = bool(product and product.requires_key)
        key_value: Optional[str] = None
        if key_required:
            key_value = await self._claim_key(order, now)

        membership_end: Optional[datetime] = None
        if product is not None and product.grants_membership:
            membership_end = await self._grant_membership(order, product.duration, now)

        label = vendor_label or method_label
        order.mark_paid(
            payment_method=method_label,
            remark=f"{label} transaction: {transaction_id}",
            product_key=key_value,
            now=now,
        )
        if not await self.order_repository.save_transition(order, OrderStatus.PENDING):
            raise SettlementConflict(order_no)

        self.events.append(
            OrderPaid(
                order_no=order_no,
                user_id=order.user_id,
                amount_fen=order.amount_fen,
                payment_method=method_label,
                transaction_id=transaction_id,
            )
        )
        return SettlementResult(
            SettlementOutcome.SETTLED,
            order_no,
            key_required=key_required,
            key_assigned=key_value is not None,
            key_value=key_value,
            membership_end=membership_end,
            expected_fen=order.amount_fen,
            paid_fen=paid_amount_fen,
        )

    async def _claim_key(self, order: Order, now: datetime) -> Optional[str]:
        claimed = await self.key_repository.claim_available(
            order.product_id,
            order_id=order.id,
            user_id=order.user_id,
            now=now,
        )
        if claimed is None:
            self.events.append(KeyPoolExhausted(order_no=order.order_no, product_id=order.product_id))
            return None
        self.events.append(
            ProductKeyAssigned(order_no=order.order_no, product_id=order.product_id, key_id=claimed.id)
        )
        return claimed.key

    async def _grant_membership(self, order: Order, days: int, now: datetime) -> datetime:
        membership = await self.membership_repository.get_by_user(order.user_id, for_update=True)
        if membership is None:
            created = await self.membership_repository.create_if_absent(
                Membership.start(order.user_id, days, now)
            )
            if created is not None:
                self.events.append(
                    MembershipExtended(
                        order_no=order.order_no,
                        user_id=order.user_id,
                        days=days,
                        end_date=created.end_date,
                        created=True,
                    )
                )
                return created.end_date
            # 并发的首次开通已抢先插入，退化为续费
            membership = await self.membership_repository.get_by_user(order.user_id, for_update=True)

        end_date = membership.extend(days, now)
        await self.membership_repository.update(membership)
        self.events.append(
            MembershipExtended(
                order_no=order.order_no,
                user_id=order.user_id,
                days=days,
                end_date=end_date,
            )
        )
        return end_date
