"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# The module-level engine must never point at a real server during tests
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import partial
from typing import Optional

import pytest
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from infrastructure.models import (
    Base,
    MembershipModel,
    OrderModel,
    PaymentChannelModel,
    ProductKeyModel,
    ProductModel,
)
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite 自带的事务处理不支持 SAVEPOINT，改为由 SQLAlchemy 显式 BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def uow_factory(session_factory):
    return partial(SQLAlchemyUnitOfWork, session_factory)


class Seeder:
    """直接写 ORM 行，绕过业务规则准备测试数据"""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def _add(self, model):
        async with self._session_factory() as session:
            session.add(model)
            await session.commit()
            await session.refresh(model)
        return model

    async def product(
        self,
        *,
        price: str = "9.90",
        type: str = "serial_key",
        stock: int = 0,
        duration: Optional[int] = None,
        enabled: bool = True,
        name: str = "Test product",
    ) -> ProductModel:
        return await self._add(
            ProductModel(
                name=name,
                price=Decimal(price),
                type=type,
                stock=stock,
                duration=duration,
                enabled=enabled,
            )
        )

    async def keys(self, product_id: int, count: int, prefix: str = "KEY") -> list[ProductKeyModel]:
        return [
            await self._add(ProductKeyModel(product_id=product_id, key=f"{prefix}-{product_id}-{i}"))
            for i in range(count)
        ]

    async def order(
        self,
        product_id: int,
        *,
        order_no: str = "SL20250101ABC",
        amount: str = "9.90",
        user_id: int = 1,
        status: str = "pending",
    ) -> OrderModel:
        now = datetime.now(timezone.utc)
        return await self._add(
            OrderModel(
                order_no=order_no,
                product_id=product_id,
                user_id=user_id,
                amount=Decimal(amount),
                status=status,
                created_at=now,
                updated_at=now,
            )
        )

    async def membership(
        self,
        user_id: int,
        *,
        start: datetime,
        end: datetime,
        active: bool = True,
        type: str = "monthly",
    ) -> MembershipModel:
        return await self._add(
            MembershipModel(user_id=user_id, type=type, start_date=start, end_date=end, active=active)
        )

    async def channel(self, code: str, config: dict, *, enabled: bool = True) -> PaymentChannelModel:
        return await self._add(PaymentChannelModel(code=code, name=code, enabled=enabled, config=config))

    async def get_order(self, order_no: str) -> Optional[OrderModel]:
        async with self._session_factory() as session:
            result = await session.execute(select(OrderModel).where(OrderModel.order_no == order_no))
            return result.scalar_one_or_none()

    async def keys_for(self, product_id: int) -> list[ProductKeyModel]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProductKeyModel).where(ProductKeyModel.product_id == product_id).order_by(ProductKeyModel.id)
            )
            return list(result.scalars().all())

    async def get_membership(self, user_id: int) -> Optional[MembershipModel]:
        async with self._session_factory() as session:
            result = await session.execute(select(MembershipModel).where(MembershipModel.user_id == user_id))
            return result.scalar_one_or_none()


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def channel_settings():
    from core.settings import PaymentSettings
    from tests.payments.vendor_payloads import EPAY_KEY, WECHAT_KEY, XUNHU_SECRET

    return PaymentSettings(
        wechat={"app_id": "wx2421b1c4370ec43b", "mch_id": "10000100", "api_key": WECHAT_KEY},
        epay={"pid": "1001", "key": EPAY_KEY, "gateway": "https://epay.example.com"},
        xunhupay={"appid": "201906120001", "app_secret": XUNHU_SECRET},
        test={"enabled": True, "secret": "test-channel-secret"},
    )


@pytest.fixture
def app(uow_factory, channel_settings):
    from api.dependencies import get_channel_config_service, get_uow_factory
    from application.services.channel_config_service import ChannelConfigService
    from main import app

    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_channel_config_service] = lambda: ChannelConfigService(
        uow_factory,
        channel_settings,
        site_url="http://testserver",
        test_secret_fallback="fallback-secret",
    )
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    import httpx

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


def _make_token(user_id: int = 1, *, expires_in: int = 3600) -> str:
    import jwt
    from core.config import settings

    now = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "iat": now, "exp": now + timedelta(seconds=expires_in)}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {_make_token(1)}"}


@pytest.fixture
def make_token():
    return _make_token
