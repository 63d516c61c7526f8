import re
from datetime import datetime, timedelta, timezone

import pytest

from application.dtos.shop import CreateOrder, OrderView
from application.services.order_service import OrderService
from domain.common.exceptions import (
    OrderAccessDeniedException,
    OrderNotFoundException,
    OrderStateException,
    ProductNotFoundException,
    ProductSoldOutException,
    ProductUnavailableException,
    TooManyPendingOrdersException,
)
from domain.shop.entity import OrderStatus


@pytest.fixture
def service(uow_factory):
    return OrderService(uow_factory, max_pending_orders=2)


@pytest.mark.asyncio
async def test_create_order_copies_price_and_generates_order_no(service, seed):
    product = await seed.product(price="9.90")
    await seed.keys(product.id, 1)

    order = await service.create_order(1, CreateOrder(product_id=product.id, payment_method="epay"))

    assert re.fullmatch(r"ORD\d{8}[A-Z0-9]{8}", order.order_no)
    assert order.status == OrderStatus.PENDING
    assert order.amount_fen == 990
    assert OrderView.from_entity(order).model_dump(mode="json")["amount"] == "9.90"
    stored = await seed.get_order(order.order_no)
    assert stored.user_id == 1 and stored.payment_method == "epay"


@pytest.mark.asyncio
async def test_create_order_rejections(service, seed):
    with pytest.raises(ProductNotFoundException):
        await service.create_order(1, CreateOrder(product_id=999))

    disabled = await seed.product(enabled=False, stock=-1)
    with pytest.raises(ProductUnavailableException):
        await service.create_order(1, CreateOrder(product_id=disabled.id))

    sold_out = await seed.product()
    with pytest.raises(ProductSoldOutException):
        await service.create_order(1, CreateOrder(product_id=sold_out.id))


@pytest.mark.asyncio
async def test_pending_order_limit(service, seed):
    product = await seed.product(stock=-1)
    for _ in range(2):
        await service.create_order(3, CreateOrder(product_id=product.id))
    with pytest.raises(TooManyPendingOrdersException):
        await service.create_order(3, CreateOrder(product_id=product.id))
    # 其他用户不受影响
    await service.create_order(4, CreateOrder(product_id=product.id))


@pytest.mark.asyncio
async def test_get_and_list_are_scoped_to_owner(service, seed):
    product = await seed.product(stock=-1)
    await seed.order(product.id, order_no="SL-A", user_id=1)
    await seed.order(product.id, order_no="SL-B", user_id=1, status="paid")
    await seed.order(product.id, order_no="SL-C", user_id=2)

    assert {o.order_no for o in await service.list_orders(1)} == {"SL-A", "SL-B"}
    assert [o.order_no for o in await service.list_orders(1, OrderStatus.PAID)] == ["SL-B"]
    assert (await service.get_order(1, "SL-A")).status == OrderStatus.PENDING

    with pytest.raises(OrderAccessDeniedException):
        await service.get_order(1, "SL-C")
    with pytest.raises(OrderNotFoundException):
        await service.get_order(1, "SL-NONE")


@pytest.mark.asyncio
async def test_cancel_only_from_pending(service, seed):
    product = await seed.product(stock=-1)
    await seed.order(product.id, order_no="SL-P", user_id=1)
    await seed.order(product.id, order_no="SL-D", user_id=1, status="paid")

    cancelled = await service.cancel_order(1, "SL-P")
    assert cancelled.status == OrderStatus.CANCELLED
    assert (await seed.get_order("SL-P")).status == "cancelled"

    with pytest.raises(OrderStateException):
        await service.cancel_order(1, "SL-D")
    assert (await seed.get_order("SL-D")).status == "paid"


@pytest.mark.asyncio
async def test_membership_lookup_ignores_expired(service, seed):
    now = datetime.now(timezone.utc)
    await seed.membership(1, start=now - timedelta(days=1), end=now + timedelta(days=29))
    await seed.membership(2, start=now - timedelta(days=60), end=now - timedelta(days=30))

    current = await service.get_membership(1)
    assert current is not None and current.active
    assert await service.get_membership(2) is None
    assert await service.get_membership(3) is None
