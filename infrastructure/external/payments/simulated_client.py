"""
Simulated payment channel (``test``).

Deterministic stand-in for a real gateway: ``create_payment`` returns the signed
notification the gateway would have sent instead of calling the network, and
notifications are verified with HMAC-SHA256 over the canonical string.
"""
from __future__ import annotations

import hashlib
import hmac
import uuid
from typing import Any, Mapping, Optional

from application.dtos.payments import (
    ChannelCredentials,
    CreatePayment,
    PaymentIntent,
    VerifiedNotification,
)
from domain.common.exceptions import DomainValidationException
from domain.shop.money import format_yuan, parse_yuan_strict
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentNotificationError


class SimulatedPaymentClient(BasePaymentClient):
    provider = "test"
    vendor_name = "Test Pay"

    def __init__(
        self,
        credentials: ChannelCredentials,
        *,
        auto_success: bool = True,
        delay: float = 0.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(credentials, **kwargs)
        self.auto_success = auto_success
        self.delay = delay

    def sign(self, fields: Mapping[str, Any]) -> str:
        return hmac.new(
            self.credentials.secret.encode("utf-8"),
            self._signed_payload(fields).encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def verify_notification(self, fields: Mapping[str, str]) -> VerifiedNotification:
        self._verify_signature(fields)
        self._require(fields, "trade_no", "out_trade_no", "money")
        self._require_paid(fields)
        try:
            amount_fen = parse_yuan_strict(fields["money"])
        except DomainValidationException as exc:
            raise PaymentNotificationError(
                "invalid amount", provider=self.provider, details={"field": exc.field}
            ) from exc
        return VerifiedNotification(
            provider=self.provider,
            order_no=fields["out_trade_no"],
            amount_fen=amount_fen,
            transaction_id=fields["trade_no"],
            method_label="test",
            vendor_label=self.vendor_name,
            raw=dict(fields),
        )

    def build_notification(
        self,
        order_no: str,
        amount_fen: int,
        *,
        trade_no: Optional[str] = None,
        paid: bool = True,
    ) -> dict[str, str]:
        fields = {
            "out_trade_no": order_no,
            "trade_no": trade_no or f"TEST{uuid.uuid4().hex[:20].upper()}",
            "money": format_yuan(amount_fen),
            "trade_status": "TRADE_SUCCESS" if paid else "WAIT_BUYER_PAY",
            "type": "test",
        }
        fields["sign"] = self.sign(fields)
        return fields

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        notification = self.build_notification(req.order_no, req.amount_fen, paid=self.auto_success)
        self._log("payment_intent_simulated", order_no=req.order_no, paid=self.auto_success)
        return PaymentIntent(
            provider=self.provider,
            order_no=req.order_no,
            provider_ref=notification["trade_no"],
            params={"delay": self.delay, "auto_success": self.auto_success},
            notification=notification,
        )
