"""
Settlement runner: executes the order settlement inside one unit of work with a
bounded time budget, then reports the domain events it produced.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Optional

from application.dtos.payments import VerifiedNotification
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.shop.events import (
    KeyPoolExhausted,
    MembershipExtended,
    OrderPaid,
    ProductKeyAssigned,
)
from domain.shop.money import format_yuan
from domain.shop.service import (
    OrderSettlementService,
    SettlementConflict,
    SettlementOutcome,
    SettlementResult,
)


logger = get_logger(__name__)


class SettlementTimeout(Exception):
    """The settlement transaction exceeded its budget and was rolled back."""

    def __init__(self, order_no: str, timeout: float):
        self.order_no = order_no
        self.timeout = timeout
        super().__init__(f"settlement of {order_no} exceeded {timeout}s")


class SettlementRunner:
    def __init__(
        self,
        uow_factory: Callable[[], AbstractUnitOfWork],
        *,
        timeout_seconds: float = 5.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._timeout = timeout_seconds
        self._clock = clock

    async def settle(self, notification: VerifiedNotification) -> SettlementResult:
        try:
            result, events = await asyncio.wait_for(self._run(notification), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error(
                "settlement_timeout",
                order_no=notification.order_no,
                provider=notification.provider,
                timeout=self._timeout,
            )
            raise SettlementTimeout(notification.order_no, self._timeout)
        except SettlementConflict:
            # 并发的另一条通知已完成结算，本事务已整体回滚
            logger.info(
                "settlement_conflict_replayed",
                order_no=notification.order_no,
                provider=notification.provider,
            )
            return SettlementResult(SettlementOutcome.ALREADY_SETTLED, notification.order_no)

        self._report(notification, result, events)
        return result

    async def _run(self, n: VerifiedNotification) -> tuple[SettlementResult, list]:
        async with self._uow_factory() as uow:
            service = OrderSettlementService(
                uow.order_repository,
                uow.product_repository,
                uow.key_repository,
                uow.membership_repository,
                clock=self._clock,
            )
            result = await service.settle(
                n.order_no,
                n.transaction_id,
                n.amount_fen,
                n.method_label,
                vendor_label=n.vendor_label,
            )
            await uow.commit()
            return result, list(service.events)

    def _report(self, n: VerifiedNotification, result: SettlementResult, events: list) -> None:
        if result.outcome == SettlementOutcome.ORDER_NOT_FOUND:
            logger.error(
                "settlement_rejected",
                reason="order_not_found",
                order_no=n.order_no,
                provider=n.provider,
                transaction_id=n.transaction_id,
                operator_attention=True,
            )
        elif result.outcome == SettlementOutcome.AMOUNT_MISMATCH:
            logger.error(
                "settlement_rejected",
                reason="amount_mismatch",
                order_no=n.order_no,
                provider=n.provider,
                transaction_id=n.transaction_id,
                expected=format_yuan(result.expected_fen or 0),
                paid=format_yuan(n.amount_fen),
                operator_attention=True,
            )
        elif result.outcome == SettlementOutcome.ORDER_NOT_PAYABLE:
            logger.error(
                "settlement_rejected",
                reason="order_not_payable",
                order_no=n.order_no,
                provider=n.provider,
                transaction_id=n.transaction_id,
                operator_attention=True,
            )
        elif result.outcome == SettlementOutcome.ALREADY_SETTLED:
            logger.info("settlement_replayed", order_no=n.order_no, provider=n.provider)

        for event in events:
            if isinstance(event, OrderPaid):
                logger.info(
                    "order_paid",
                    order_no=event.order_no,
                    user_id=event.user_id,
                    amount=format_yuan(event.amount_fen),
                    payment_method=event.payment_method,
                    transaction_id=event.transaction_id,
                    event_id=event.event_id,
                )
            elif isinstance(event, ProductKeyAssigned):
                logger.info(
                    "product_key_assigned",
                    order_no=event.order_no,
                    product_id=event.product_id,
                    key_id=event.key_id,
                )
            elif isinstance(event, KeyPoolExhausted):
                logger.warning(
                    "product_key_pool_exhausted",
                    order_no=event.order_no,
                    product_id=event.product_id,
                    operator_attention=True,
                )
            elif isinstance(event, MembershipExtended):
                logger.info(
                    "membership_extended",
                    order_no=event.order_no,
                    user_id=event.user_id,
                    days=event.days,
                    end_date=event.end_date.isoformat() if event.end_date else None,
                    created=event.created,
                )
