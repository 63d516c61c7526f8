"""
Application service orchestrating payment initiation.

This class depends only on the application PaymentGateway port and DTOs.
Gateway implementations are provided by infrastructure and must be injected
from the composition root (API), keeping dependencies one-way.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Optional
from urllib.parse import urlencode

from application.dtos.payments import Acknowledgement, CreatePayment, PaymentIntent
from application.services.channel_config_service import ChannelConfigService
from application.services.notification_service import GatewayFactory, NotificationService
from application.services.order_service import OrderService
from core.logging_config import get_logger
from domain.common.exceptions import OrderStateException, PaymentChannelUnavailableException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.shop.entity import Order, OrderStatus


logger = get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        orders: OrderService,
        channels: ChannelConfigService,
        gateway_factory: GatewayFactory,
        uow_factory: Callable[..., AbstractUnitOfWork],
    ) -> None:
        self._orders = orders
        self._channels = channels
        self._gateway_factory = gateway_factory
        self._uow_factory = uow_factory

    async def create_payment(
        self,
        user_id: int,
        channel: str,
        order_no: str,
        *,
        pay_type: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> PaymentIntent:
        order = await self._payable_order(user_id, order_no)
        credentials = await self._channels.resolve(channel)
        if credentials is None:
            raise PaymentChannelUnavailableException(channel)

        req = CreatePayment(
            order_no=order.order_no,
            amount_fen=order.amount_fen,
            subject=await self._subject(order),
            pay_type=pay_type,
            client_ip=client_ip,
            notify_url=credentials.notify_url,
            return_url=credentials.return_url,
        )
        logger.info("payment_create_request", order_no=order.order_no, provider=channel, pay_type=pay_type)
        gateway = self._gateway_factory(credentials)
        try:
            intent = await gateway.create_payment(req)
        finally:
            await gateway.aclose()
        logger.info(
            "payment_create_response",
            order_no=order.order_no,
            provider=intent.provider,
            provider_ref=intent.provider_ref,
        )
        return intent

    async def simulate_payment(
        self,
        user_id: int,
        order_no: str,
        notifications: NotificationService,
    ) -> tuple[Acknowledgement, Order]:
        """Drive a payment through the simulated channel and the real ingress path."""
        intent = await self.create_payment(user_id, "test", order_no)
        delay = float((intent.params or {}).get("delay") or 0)
        if delay > 0:
            await asyncio.sleep(delay)
        body = urlencode(intent.notification or {}).encode("utf-8")
        ack = await notifications.handle(
            "test",
            body,
            {},
            content_type="application/x-www-form-urlencoded",
        )
        return ack, await self._orders.get_order(user_id, order_no)

    async def _payable_order(self, user_id: int, order_no: str) -> Order:
        order = await self._orders.get_order(user_id, order_no)
        if order.status != OrderStatus.PENDING:
            raise OrderStateException(order_no, order.status.value, "paid")
        return order

    async def _subject(self, order: Order) -> str:
        async with self._uow_factory(readonly=True) as uow:
            product = await uow.product_repository.get_by_id(order.product_id)
        return product.name if product else order.order_no
