"""
商城仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.shop.entity import (
    KeyStatus,
    Membership,
    Order,
    OrderStatus,
    PaymentChannelConfig,
    Product,
    ProductKey,
)
from domain.shop.repository import (
    MembershipRepository,
    OrderRepository,
    PaymentChannelRepository,
    ProductKeyRepository,
    ProductRepository,
)
from infrastructure.models.shop import (
    MembershipModel,
    OrderModel,
    PaymentChannelModel,
    ProductKeyModel,
    ProductModel,
)


logger = get_logger(__name__)


class ProductKeyClaimError(RuntimeError):
    """卡密领取在多次重试后仍然竞争失败"""


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            order_no=model.order_no,
            product_id=model.product_id,
            user_id=model.user_id,
            amount=Decimal(str(model.amount)),
            status=OrderStatus(model.status),
            payment_method=model.payment_method,
            product_key=model.product_key,
            remark=model.remark,
            created_at=model.created_at,
            updated_at=model.updated_at,
            payment_time=model.payment_time,
        )

    async def create(self, order: Order) -> Order:
        db_order = OrderModel(
            order_no=order.order_no,
            product_id=order.product_id,
            user_id=order.user_id,
            amount=order.amount,
            status=order.status.value,
            payment_method=order.payment_method,
            remark=order.remark,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("order_created", order_no=db_order.order_no, user_id=db_order.user_id)
        return self._to_entity(db_order)

    async def get_by_order_no(self, order_no: str, *, for_update: bool = False) -> Optional[Order]:
        query = select(OrderModel).where(OrderModel.order_no == order_no)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def list_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> List[Order]:
        query = select(OrderModel).where(OrderModel.user_id == user_id)
        if status:
            query = query.where(OrderModel.status == status.value)
        query = query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> int:
        query = select(func.count(OrderModel.id)).where(OrderModel.user_id == user_id)
        if status:
            query = query.where(OrderModel.status == status.value)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def save_transition(self, order: Order, expected_status: OrderStatus) -> bool:
        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.status == expected_status.value)
            .values(
                status=order.status.value,
                payment_method=order.payment_method,
                product_key=order.product_key,
                remark=order.remark,
                payment_time=order.payment_time,
                updated_at=order.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "order_transition_lost",
                order_no=order.order_no,
                expected=expected_status.value,
                target=order.status.value,
            )
            return False
        return True


class SQLAlchemyProductRepository(ProductRepository):
    """商品仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            name=model.name,
            price=Decimal(str(model.price)),
            type=model.type,
            stock=model.stock,
            duration=model.duration,
            enabled=model.enabled,
            description=model.description,
        )

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        db_product = await self.session.get(ProductModel, product_id)
        return self._to_entity(db_product) if db_product else None


class SQLAlchemyProductKeyRepository(ProductKeyRepository):
    """
    卡密仓储的SQLAlchemy实现

    领取采用 compare-and-swap：先挑一个候选 id（PostgreSQL 下 SKIP LOCKED 跳过
    其他事务正在处理的行），再执行 ``UPDATE ... WHERE id=:id AND status='available'``，
    影响行数不为 1 说明被并发事务抢走，换下一个候选重试。
    """

    max_claim_attempts = 10

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductKeyModel) -> ProductKey:
        return ProductKey(
            id=model.id,
            product_id=model.product_id,
            key=model.key,
            status=KeyStatus(model.status),
            order_id=model.order_id,
            user_id=model.user_id,
            expires_at=model.expires_at,
            sold_at=model.sold_at,
        )

    async def count_available(self, product_id: int) -> int:
        result = await self.session.execute(
            select(func.count(ProductKeyModel.id)).where(
                ProductKeyModel.product_id == product_id,
                ProductKeyModel.status == KeyStatus.AVAILABLE.value,
            )
        )
        return result.scalar() or 0

    async def claim_available(
        self,
        product_id: int,
        *,
        order_id: int,
        user_id: int,
        now: datetime,
    ) -> Optional[ProductKey]:
        for attempt in range(1, self.max_claim_attempts + 1):
            candidate_query = (
                select(ProductKeyModel.id)
                .where(
                    ProductKeyModel.product_id == product_id,
                    ProductKeyModel.status == KeyStatus.AVAILABLE.value,
                )
                .order_by(ProductKeyModel.id)
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            candidate_id = (await self.session.execute(candidate_query)).scalar_one_or_none()
            if candidate_id is None:
                return None

            result = await self.session.execute(
                update(ProductKeyModel)
                .where(
                    ProductKeyModel.id == candidate_id,
                    ProductKeyModel.status == KeyStatus.AVAILABLE.value,
                )
                .values(
                    status=KeyStatus.SOLD.value,
                    order_id=order_id,
                    user_id=user_id,
                    sold_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                claimed = await self.session.execute(
                    select(ProductKeyModel)
                    .where(ProductKeyModel.id == candidate_id)
                    .execution_options(populate_existing=True)
                )
                return self._to_entity(claimed.scalar_one())

            logger.info(
                "product_key_claim_lost",
                product_id=product_id,
                key_id=candidate_id,
                attempt=attempt,
            )
        raise ProductKeyClaimError(f"could not claim a key for product {product_id}")


class SQLAlchemyMembershipRepository(MembershipRepository):
    """会员仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: MembershipModel) -> Membership:
        return Membership(
            id=model.id,
            user_id=model.user_id,
            type=model.type,
            start_date=model.start_date,
            end_date=model.end_date,
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def get_by_user(self, user_id: int, *, for_update: bool = False) -> Optional[Membership]:
        query = select(MembershipModel).where(MembershipModel.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        # 并发插入后需要看到最新的行，而不是身份映射里的旧对象
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        db_membership = result.scalar_one_or_none()
        return self._to_entity(db_membership) if db_membership else None

    async def create_if_absent(self, membership: Membership) -> Optional[Membership]:
        db_membership = MembershipModel(
            user_id=membership.user_id,
            type=membership.type.value,
            start_date=membership.start_date,
            end_date=membership.end_date,
            active=membership.active,
            created_at=membership.created_at,
            updated_at=membership.updated_at,
        )
        try:
            # 保存点内插入：唯一约束冲突只回滚保存点，外层事务继续
            async with self.session.begin_nested():
                self.session.add(db_membership)
                await self.session.flush()
        except IntegrityError:
            logger.info("membership_insert_conflict", user_id=membership.user_id)
            return None
        await self.session.refresh(db_membership)
        return self._to_entity(db_membership)

    async def update(self, membership: Membership) -> Membership:
        db_membership = await self.session.get(MembershipModel, membership.id)
        if db_membership is None:
            raise ValueError(f"membership {membership.id} not found")
        db_membership.type = membership.type.value
        db_membership.start_date = membership.start_date
        db_membership.end_date = membership.end_date
        db_membership.active = membership.active
        db_membership.updated_at = membership.updated_at
        await self.session.flush()
        return self._to_entity(db_membership)


class SQLAlchemyPaymentChannelRepository(PaymentChannelRepository):
    """支付通道配置仓储"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentChannelModel) -> PaymentChannelConfig:
        return PaymentChannelConfig(
            code=model.code,
            name=model.name,
            enabled=model.enabled,
            config=dict(model.config or {}),
        )

    async def get_by_code(self, code: str) -> Optional[PaymentChannelConfig]:
        result = await self.session.execute(
            select(PaymentChannelModel).where(PaymentChannelModel.code == code)
        )
        db_channel = result.scalar_one_or_none()
        return self._to_entity(db_channel) if db_channel else None
