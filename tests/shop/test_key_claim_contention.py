from datetime import datetime, timezone
from functools import partial

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.sql.dml import Update

from application.services.settlement_service import SettlementRunner
from domain.shop.service import SettlementOutcome
from infrastructure.models import ProductKeyModel
from infrastructure.repositories.shop_repository import ProductKeyClaimError, SQLAlchemyProductKeyRepository
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from tests.shop.test_settlement import notification


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class CompetingSession:
    """
    包装会话：卡密的条件 UPDATE 执行之前，先把当前候选卡密标记为已售，
    模拟另一笔结算在 SELECT 与 UPDATE 之间抢先提交。
    """

    def __init__(self, session, steals: int):
        self._session = session
        self.steals = steals
        self.stolen: list[int] = []

    def __getattr__(self, name):
        return getattr(self._session, name)

    async def execute(self, statement, *args, **kwargs):
        if self.steals and isinstance(statement, Update) and statement.table.name == ProductKeyModel.__tablename__:
            self.steals -= 1
            candidate = (
                await self._session.execute(
                    select(func.min(ProductKeyModel.id)).where(ProductKeyModel.status == "available")
                )
            ).scalar_one()
            await self._session.execute(
                update(ProductKeyModel).where(ProductKeyModel.id == candidate).values(status="sold")
            )
            self.stolen.append(candidate)
        return await self._session.execute(statement, *args, **kwargs)


class CompetingUnitOfWork(SQLAlchemyUnitOfWork):
    def __init__(self, session_factory, *, steals: int, **kwargs):
        super().__init__(session_factory, **kwargs)
        self.competitor: CompetingSession | None = None
        self._steals = steals

    async def __aenter__(self) -> "CompetingUnitOfWork":
        await super().__aenter__()
        self.competitor = CompetingSession(self.session, self._steals)
        self.key_repository = SQLAlchemyProductKeyRepository(self.competitor)
        return self


@pytest.mark.asyncio
async def test_lost_claim_retries_with_next_key(session_factory, seed):
    product = await seed.product(price="9.90")
    keys = await seed.keys(product.id, 3)
    order = await seed.order(product.id, order_no="SL20250101RACE", amount="9.90")

    async with CompetingUnitOfWork(session_factory, steals=1) as uow:
        claimed = await uow.key_repository.claim_available(
            product.id, order_id=order.id, user_id=order.user_id, now=NOW
        )
        stolen = uow.competitor.stolen
        await uow.commit()

    assert stolen == [keys[0].id]
    assert claimed.id == keys[1].id
    rows = await seed.keys_for(product.id)
    assert [(k.status, k.order_id) for k in rows] == [
        ("sold", None),
        ("sold", order.id),
        ("available", None),
    ]


@pytest.mark.asyncio
async def test_settlement_survives_a_lost_claim(session_factory, seed):
    product = await seed.product(price="9.90")
    keys = await seed.keys(product.id, 2)
    await seed.order(product.id, order_no="SL20250101RACE", amount="9.90")
    runner = SettlementRunner(
        partial(CompetingUnitOfWork, session_factory, steals=1), timeout_seconds=5, clock=lambda: NOW
    )

    result = await runner.settle(notification(order_no="SL20250101RACE"))

    assert result.outcome == SettlementOutcome.SETTLED
    assert result.key_assigned
    assert result.key_value == keys[1].key
    assert (await seed.get_order("SL20250101RACE")).product_key == keys[1].key


@pytest.mark.asyncio
async def test_exhausted_claim_attempts_roll_back_settlement(session_factory, seed, monkeypatch):
    monkeypatch.setattr(SQLAlchemyProductKeyRepository, "max_claim_attempts", 2)
    product = await seed.product(price="9.90")
    await seed.keys(product.id, 3)
    await seed.order(product.id, order_no="SL20250101RACE", amount="9.90")
    runner = SettlementRunner(
        partial(CompetingUnitOfWork, session_factory, steals=2), timeout_seconds=5, clock=lambda: NOW
    )

    with pytest.raises(ProductKeyClaimError):
        await runner.settle(notification(order_no="SL20250101RACE"))

    order = await seed.get_order("SL20250101RACE")
    assert order.status == "pending"
    assert order.product_key is None
    assert all(k.status == "available" for k in await seed.keys_for(product.id))
