"""
Epay (易支付) adapter: form-encoded notifications, MD5(canonical + key) signatures.
"""
from __future__ import annotations

import hashlib
from typing import Any, Mapping
from urllib.parse import urlencode

from application.dtos.payments import CreatePayment, PaymentIntent, VerifiedNotification
from domain.common.exceptions import DomainValidationException
from domain.shop.money import format_yuan, parse_yuan_strict
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentNotificationError,
    PaymentProviderError,
)
from shared.codes.payment_codes import PAY_TYPE_NAMES


class EpayClient(BasePaymentClient):
    provider = "epay"
    vendor_name = "Epay"
    unsigned_fields = ("sign_type",)

    def sign(self, fields: Mapping[str, Any]) -> str:
        payload = f"{self._signed_payload(fields)}{self.credentials.secret}"
        return hashlib.md5(payload.encode("utf-8")).hexdigest()

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
        pay_type = fields.get("type") or "unknown"
        return VerifiedNotification(
            provider=self.provider,
            order_no=fields["out_trade_no"],
            amount_fen=amount_fen,
            transaction_id=fields["trade_no"],
            method_label=f"epay_{pay_type}",
            vendor_label=f"{self.vendor_name} ({PAY_TYPE_NAMES.get(pay_type, pay_type)})",
            raw=dict(fields),
        )

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        cfg = self.credentials
        if not (cfg.merchant_id and cfg.gateway):
            raise PaymentProviderError("EPAY configuration incomplete", provider=self.provider)
        params: dict[str, Any] = {
            "pid": cfg.merchant_id,
            "type": req.pay_type or "alipay",
            "out_trade_no": req.order_no,
            "notify_url": self._notify_url(req),
            "return_url": req.return_url or cfg.return_url,
            "name": req.subject,
            "money": format_yuan(req.amount_fen),
            "device": "pc",
            "clientip": req.client_ip or "127.0.0.1",
        }
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params["sign"] = self.sign(params)
        params["sign_type"] = "MD5"

        gateway = cfg.gateway.rstrip("/")
        pay_url = f"{gateway}/submit.php?{urlencode(params)}"
        data = await self._post_form(f"{gateway}/mapi.php", params)
        if str(data.get("code")) != "1":
            raise PaymentProviderError(
                str(data.get("msg") or "create order failed"),
                provider=self.provider,
                provider_code=str(data.get("code")),
            )
        self._log("payment_intent_created", order_no=req.order_no, trade_no=data.get("trade_no"))
        return PaymentIntent(
            provider=self.provider,
            order_no=req.order_no,
            pay_url=data.get("payurl") or pay_url,
            qr_code=data.get("qrcode"),
            provider_ref=data.get("trade_no") or data.get("tradeNo"),
            params={"type": params["type"]},
        )
