"""
Order use-cases for the shop: create, list, poll, cancel, membership lookup.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional

from application.dtos.shop import CreateOrder
from core.logging_config import get_logger
from domain.common.exceptions import (
    OrderAccessDeniedException,
    OrderNotFoundException,
    OrderStateException,
    ProductNotFoundException,
    ProductSoldOutException,
    ProductUnavailableException,
    TooManyPendingOrdersException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.shop.entity import Membership, Order, OrderStatus
from domain.shop.service import generate_order_no


logger = get_logger(__name__)


class OrderService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        max_pending_orders: int = 3,
    ) -> None:
        self._uow_factory = uow_factory
        self._max_pending = max_pending_orders

    async def create_order(self, user_id: int, req: CreateOrder) -> Order:
        async with self._uow_factory() as uow:
            product = await uow.product_repository.get_by_id(req.product_id)
            if product is None:
                raise ProductNotFoundException(req.product_id)
            if not product.enabled:
                raise ProductUnavailableException(req.product_id)
            if product.requires_key and await uow.key_repository.count_available(product.id) == 0:
                raise ProductSoldOutException(product.id)

            pending = await uow.order_repository.count_by_user(user_id, OrderStatus.PENDING)
            if pending >= self._max_pending:
                raise TooManyPendingOrdersException(self._max_pending)

            now = datetime.now(timezone.utc)
            order = await uow.order_repository.create(
                Order(
                    id=None,
                    order_no=generate_order_no(now),
                    product_id=product.id,
                    user_id=user_id,
                    amount=product.price,
                    status=OrderStatus.PENDING,
                    payment_method=req.payment_method,
                    created_at=now,
                    updated_at=now,
                )
            )
            await uow.commit()
        logger.info(
            "order_placed",
            order_no=order.order_no,
            user_id=user_id,
            product_id=product.id,
            amount=f"{order.amount:.2f}",
        )
        return order

    async def list_orders(self, user_id: int, status: Optional[OrderStatus] = None) -> List[Order]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.list_by_user(user_id, status)

    async def get_order(self, user_id: int, order_no: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_no(order_no)
        return self._owned(order, user_id, order_no)

    async def cancel_order(self, user_id: int, order_no: str) -> Order:
        async with self._uow_factory() as uow:
            order = self._owned(
                await uow.order_repository.get_by_order_no(order_no, for_update=True),
                user_id,
                order_no,
            )
            if order.status != OrderStatus.PENDING:
                raise OrderStateException(order_no, order.status.value, "cancelled")
            order.cancel()
            if not await uow.order_repository.save_transition(order, OrderStatus.PENDING):
                # 结算与取消并发时，以结算为准
                raise OrderStateException(order_no, "paid", "cancelled")
            await uow.commit()
        logger.info("order_cancelled", order_no=order_no, user_id=user_id)
        return order

    async def get_membership(self, user_id: int) -> Optional[Membership]:
        """有效会员（已激活且未过期），否则 None"""
        async with self._uow_factory(readonly=True) as uow:
            membership = await uow.membership_repository.get_by_user(user_id)
        if membership is None or not membership.is_valid():
            return None
        return membership

    @staticmethod
    def _owned(order: Optional[Order], user_id: int, order_no: str) -> Order:
        if order is None:
            raise OrderNotFoundException(order_no)
        if order.user_id != user_id:
            raise OrderAccessDeniedException(order_no)
        return order
