"""
Webhook ingress orchestration: decode → resolve secret → verify → settle → ack.

Every path ends in a vendor acknowledgement; nothing here raises to the caller.
Settlement is invoked at most once per notification and never for one that
failed verification.
"""
from __future__ import annotations

from typing import Callable, Mapping, Optional

from application.dtos.payments import Acknowledgement, ChannelCredentials
from application.ports.payment_gateway import PaymentGateway
from application.services.channel_config_service import ChannelConfigService
from application.services.settlement_service import SettlementRunner, SettlementTimeout
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.shop.service import SettlementOutcome


logger = get_logger(__name__)

GatewayFactory = Callable[[ChannelCredentials], PaymentGateway]

_REJECTION_MESSAGES = {
    SettlementOutcome.ORDER_NOT_FOUND: "order not found",
    SettlementOutcome.AMOUNT_MISMATCH: "amount mismatch",
    SettlementOutcome.ORDER_NOT_PAYABLE: "order not payable",
}


class NotificationService:
    def __init__(
        self,
        channels: ChannelConfigService,
        runner: SettlementRunner,
        gateway_factory: GatewayFactory,
    ) -> None:
        self._channels = channels
        self._runner = runner
        self._gateway_factory = gateway_factory

    def reject(self, channel: str, message: str) -> Acknowledgement:
        """Fail acknowledgement for a request refused before decoding (e.g. IP allowlist)."""
        return self._unkeyed_gateway(channel).fail_ack(message)

    async def handle(
        self,
        channel: str,
        body: bytes,
        query: Mapping[str, str],
        content_type: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> Acknowledgement:
        unkeyed = self._unkeyed_gateway(channel)
        try:
            fields = unkeyed.decode(body, query, content_type)
        except BusinessException as exc:
            logger.warning(
                "payment_notify_undecodable",
                channel=channel,
                client_ip=client_ip,
                reason=exc.message,
                body_size=len(body or b""),
            )
            return unkeyed.fail_ack("parameter error")

        logger.info("payment_notify_received", channel=channel, client_ip=client_ip, payload=fields)

        try:
            return await self._process(channel, fields, unkeyed)
        except Exception:
            logger.error(
                "payment_notify_failed",
                channel=channel,
                order_no=fields.get("out_trade_no") or fields.get("trade_order_id"),
                exc_info=True,
            )
            return unkeyed.fail_ack("processing failed")

    async def _process(
        self,
        channel: str,
        fields: dict[str, str],
        unkeyed: PaymentGateway,
    ) -> Acknowledgement:
        credentials = await self._channels.resolve(channel)
        if credentials is None:
            logger.error("payment_channel_not_configured", channel=channel, operator_attention=True)
            return unkeyed.fail_ack("configuration error")

        gateway = self._gateway_factory(credentials)
        try:
            notification = gateway.verify_notification(fields)
        except BusinessException as exc:
            logger.warning(
                "payment_notify_rejected",
                channel=channel,
                error_type=exc.error_type,
                reason=exc.message,
                order_no=fields.get("out_trade_no") or fields.get("trade_order_id"),
            )
            return gateway.fail_ack(exc.message)

        try:
            result = await self._runner.settle(notification)
        except SettlementTimeout:
            return gateway.fail_ack("timeout")

        if result.acknowledged:
            if result.outcome == SettlementOutcome.SETTLED:
                logger.info(
                    "payment_notify_settled",
                    channel=channel,
                    order_no=result.order_no,
                    key_required=result.key_required,
                    key_assigned=result.key_assigned,
                )
            return gateway.success_ack()
        return gateway.fail_ack(_REJECTION_MESSAGES.get(result.outcome, "rejected"))

    def _unkeyed_gateway(self, channel: str) -> PaymentGateway:
        # 仅用于解码与应答格式化；空密钥的网关会拒绝任何签名校验
        return self._gateway_factory(ChannelCredentials(channel=channel))
