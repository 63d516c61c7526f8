"""
商城领域实体 - 订单 / 商品 / 卡密 / 会员
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException
from domain.shop.money import to_decimal, yuan_to_fen


class OrderStatus(str, Enum):
    """订单状态：pending → paid → completed，或 pending → cancelled"""
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProductType(str, Enum):
    SERIAL_KEY = "serial_key"
    MEMBERSHIP = "membership"
    OTHER = "other"


class KeyStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    USED = "used"


class MembershipType(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


UNLIMITED_STOCK = -1
YEARLY_THRESHOLD_DAYS = 365


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Product:
    """商品；stock == -1 表示不限量（不走卡密池）"""

    id: Optional[int]
    name: str
    price: Decimal
    type: ProductType
    stock: int = UNLIMITED_STOCK
    duration: Optional[int] = None  # 会员时长（天）
    enabled: bool = True
    description: Optional[str] = None

    def __post_init__(self):
        self.price = to_decimal(self.price)
        if self.price <= 0:
            raise DomainValidationException(f"商品价格必须大于0: {self.price}", field="price")
        self.type = ProductType(self.type)
        if self.duration is not None and self.duration <= 0:
            raise DomainValidationException(f"会员时长必须大于0: {self.duration}", field="duration")

    @property
    def requires_key(self) -> bool:
        """需要从卡密池发放一个卡密"""
        return self.type == ProductType.SERIAL_KEY and self.stock != UNLIMITED_STOCK

    @property
    def grants_membership(self) -> bool:
        return self.type == ProductType.MEMBERSHIP and bool(self.duration)


@dataclass
class ProductKey:
    """卡密：available → sold 只允许发生一次"""

    id: Optional[int]
    product_id: int
    key: str
    status: KeyStatus = KeyStatus.AVAILABLE
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = KeyStatus(self.status)
        self.expires_at = _ensure_utc(self.expires_at)
        self.sold_at = _ensure_utc(self.sold_at)


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 金额创建后不可变
    2. 状态只能 pending → paid → completed 或 pending → cancelled
    3. paid/completed 之后的重复结算是无操作（幂等）
    """

    id: Optional[int]
    order_no: str
    product_id: int
    user_id: int
    amount: Decimal
    status: OrderStatus = OrderStatus.PENDING
    payment_method: Optional[str] = None
    product_key: Optional[str] = None
    remark: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    payment_time: Optional[datetime] = None

    def __post_init__(self):
        self.status = OrderStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.payment_time = _ensure_utc(self.payment_time)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "amount":
            if "amount" in self.__dict__:
                raise DomainValidationException("订单金额创建后不可修改", field="amount")
            value = to_decimal(value)
            if value <= 0:
                raise DomainValidationException(f"订单金额必须大于0: {value}", field="amount")
        super().__setattr__(name, value)

    @property
    def amount_fen(self) -> int:
        return yuan_to_fen(self.amount)

    @property
    def is_settled(self) -> bool:
        return self.status in (OrderStatus.PAID, OrderStatus.COMPLETED)

    def mark_paid(
        self,
        *,
        payment_method: str,
        remark: str,
        product_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """标记已支付；只能从 pending 转换"""
        if self.status != OrderStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 paid", field="status"
            )
        paid_at = _ensure_utc(now) or datetime.now(timezone.utc)
        self.status = OrderStatus.PAID
        self.payment_method = payment_method
        self.remark = remark
        if product_key is not None:
            self.product_key = product_key
        self.payment_time = paid_at
        self.updated_at = paid_at

    def complete(self) -> None:
        if self.status != OrderStatus.PAID:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 completed", field="status"
            )
        self.status = OrderStatus.COMPLETED
        self.updated_at = datetime.now(timezone.utc)

    def cancel(self) -> None:
        if self.status != OrderStatus.PENDING:
            raise DomainValidationException(
                f"无法取消状态为 {self.status.value} 的订单", field="status"
            )
        self.status = OrderStatus.CANCELLED
        self.updated_at = datetime.now(timezone.utc)


@dataclass
class Membership:
    """用户会员，每个用户至多一条记录"""

    id: Optional[int]
    user_id: int
    type: MembershipType
    start_date: datetime
    end_date: datetime
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.type = MembershipType(self.type)
        self.start_date = _ensure_utc(self.start_date)
        self.end_date = _ensure_utc(self.end_date)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @staticmethod
    def type_for_duration(days: int) -> MembershipType:
        return MembershipType.YEARLY if days >= YEARLY_THRESHOLD_DAYS else MembershipType.MONTHLY

    @classmethod
    def start(cls, user_id: int, days: int, now: Optional[datetime] = None) -> "Membership":
        """首次开通：start = now，end = now + days"""
        if days <= 0:
            raise DomainValidationException(f"会员时长必须大于0: {days}", field="duration")
        start = _ensure_utc(now) or datetime.now(timezone.utc)
        return cls(
            id=None,
            user_id=user_id,
            type=cls.type_for_duration(days),
            start_date=start,
            end_date=start + timedelta(days=days),
            active=True,
            created_at=start,
            updated_at=start,
        )

    def extend(self, days: int, now: Optional[datetime] = None) -> datetime:
        """
        续费叠加：从当前 end_date 往后顺延，而不是从现在算起；
        同时强制激活（已过期/停用的会员被重新激活）
        """
        if days <= 0:
            raise DomainValidationException(f"会员时长必须大于0: {days}", field="duration")
        self.end_date = self.end_date + timedelta(days=days)
        self.active = True
        self.updated_at = _ensure_utc(now) or datetime.now(timezone.utc)
        return self.end_date

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        current = _ensure_utc(now) or datetime.now(timezone.utc)
        return self.active and self.end_date > current


@dataclass
class PaymentChannelConfig:
    """支付通道配置（由后台维护），结算只读取其中的密钥"""

    code: str
    name: str
    enabled: bool = False
    config: dict = field(default_factory=dict)

    def get(self, *names: str) -> Optional[str]:
        """按候选键名依次取值（兼容 apiKey/api_key 等写法）"""
        for name in names:
            value = self.config.get(name)
            if value not in (None, ""):
                return str(value)
        return None
