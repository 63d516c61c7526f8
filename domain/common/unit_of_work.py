"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.shop.repository import (
    MembershipRepository,
    OrderRepository,
    PaymentChannelRepository,
    ProductKeyRepository,
    ProductRepository,
)


class AbstractUnitOfWork(ABC):
    """
    应用层事务边界控制抽象

    进入时开启事务；任何异常（包括任务取消）都会回滚；
    正常退出且未显式提交时自动提交。
    """

    order_repository: OrderRepository
    product_repository: ProductRepository
    key_repository: ProductKeyRepository
    membership_repository: MembershipRepository
    channel_repository: PaymentChannelRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.order_repository = None  # type: ignore[assignment]
        self.product_repository = None  # type: ignore[assignment]
        self.key_repository = None  # type: ignore[assignment]
        self.membership_repository = None  # type: ignore[assignment]
        self.channel_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
        ...
