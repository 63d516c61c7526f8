"""
商城数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductModel(Base):
    """商品表"""
    __tablename__ = "shop_products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, comment="商品名称")
    description = Column(Text, nullable=True)
    price = Column(Numeric(precision=10, scale=2), nullable=False, comment="单价（元）")
    type = Column(String(30), nullable=False, default="serial_key", comment="serial_key/membership/other")
    stock = Column(Integer, nullable=False, default=-1, comment="-1 表示不限量（不走卡密池）")
    duration = Column(Integer, nullable=True, comment="会员时长（天）")
    enabled = Column(Boolean, nullable=False, default=True, comment="是否上架")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class OrderModel(Base):
    """
    订单表

    status 只允许 pending → paid → completed / pending → cancelled，
    写 paid 的唯一路径是结算服务的条件更新
    """
    __tablename__ = "shop_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_no = Column(String(64), unique=True, nullable=False, index=True, comment="商户订单号")
    product_id = Column(Integer, ForeignKey("shop_products.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True, comment="用户ID")
    amount = Column(Numeric(precision=10, scale=2), nullable=False, comment="订单金额（元）")
    status = Column(String(20), nullable=False, default="pending", comment="pending/paid/completed/cancelled")
    payment_method = Column(String(50), nullable=True, comment="支付方式标签，如 epay_alipay")
    product_key = Column(String(255), nullable=True, comment="已发放的卡密")
    remark = Column(Text, nullable=True)
    payment_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_shop_orders_user_status", "user_id", "status"),
    )


class ProductKeyModel(Base):
    """卡密表"""
    __tablename__ = "shop_product_keys"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("shop_products.id"), nullable=False)
    key = Column(String(255), unique=True, nullable=False, comment="卡密")
    status = Column(String(20), nullable=False, default="available", comment="available/sold/used")
    order_id = Column(Integer, ForeignKey("shop_orders.id"), nullable=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    sold_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_shop_product_keys_product_status", "product_id", "status"),
    )


class MembershipModel(Base):
    """会员表（每个用户一条）"""
    __tablename__ = "shop_memberships"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False, comment="用户ID")
    type = Column(String(20), nullable=False, default="monthly", comment="monthly/yearly/lifetime")
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class PaymentChannelModel(Base):
    """支付通道配置（后台维护）"""
    __tablename__ = "payment_channels"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(30), unique=True, nullable=False, comment="wechat/epay/xunhupay/test")
    name = Column(String(100), nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    config = Column(JSON, nullable=True, comment="厂商配置（商户号、密钥等）")
    sort = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
