"""
商城仓储接口 - 定义订单/商品/卡密/会员数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import (
    Membership,
    Order,
    OrderStatus,
    PaymentChannelConfig,
    Product,
    ProductKey,
)


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单"""

    @abstractmethod
    async def get_by_order_no(self, order_no: str, *, for_update: bool = False) -> Optional[Order]:
        """根据商户订单号获取订单；for_update 时加行锁"""

    @abstractmethod
    async def list_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> List[Order]:
        """用户订单列表，按创建时间倒序"""

    @abstractmethod
    async def count_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> int:
        """统计用户订单数量"""

    @abstractmethod
    async def save_transition(self, order: Order, expected_status: OrderStatus) -> bool:
        """
        条件写入：仅当库中状态仍为 expected_status 时持久化订单的新状态。

        Returns:
            bool: 是否写入成功（False 表示被并发请求抢先）
        """


class ProductRepository(ABC):
    """商品仓储抽象接口"""

    @abstractmethod
    async def get_by_id(self, product_id: int) -> Optional[Product]:
        """根据ID获取商品"""


class ProductKeyRepository(ABC):
    """卡密仓储抽象接口"""

    @abstractmethod
    async def count_available(self, product_id: int) -> int:
        """统计可用卡密数量"""

    @abstractmethod
    async def claim_available(
        self,
        product_id: int,
        *,
        order_id: int,
        user_id: int,
        now: datetime,
    ) -> Optional[ProductKey]:
        """
        原子领取一个可用卡密（available → sold 并绑定订单/用户）。

        必须是条件更新（compare-and-swap），不能先读后写；
        没有可用卡密时返回 None 而不是抛异常。
        """


class MembershipRepository(ABC):
    """会员仓储抽象接口（每个用户至多一条）"""

    @abstractmethod
    async def get_by_user(self, user_id: int, *, for_update: bool = False) -> Optional[Membership]:
        """获取用户会员记录；for_update 时加行锁"""

    @abstractmethod
    async def create_if_absent(self, membership: Membership) -> Optional[Membership]:
        """
        首次开通时插入；若并发请求已插入（唯一约束冲突），返回 None，
        且不影响外层事务。
        """

    @abstractmethod
    async def update(self, membership: Membership) -> Membership:
        """更新会员记录"""


class PaymentChannelRepository(ABC):
    """支付通道配置仓储（只读）"""

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[PaymentChannelConfig]:
        """根据通道编码获取配置"""
