"""
XunhuPay (虎皮椒) adapter: form-encoded notifications signed in the ``hash`` field.
"""
from __future__ import annotations

import hashlib
import secrets
import string
import time
from typing import Any, Mapping

from application.dtos.payments import CreatePayment, PaymentIntent, VerifiedNotification
from domain.common.exceptions import DomainValidationException
from domain.shop.money import format_yuan, parse_yuan_strict
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentNotificationError,
    PaymentProviderError,
)

_NONCE_ALPHABET = string.ascii_letters + string.digits


class XunhupayClient(BasePaymentClient):
    provider = "xunhupay"
    vendor_name = "XunhuPay"

    def sign(self, fields: Mapping[str, Any]) -> str:
        payload = f"{self._signed_payload(fields)}{self.credentials.secret}"
        return hashlib.md5(payload.encode("utf-8")).hexdigest()

    def verify_notification(self, fields: Mapping[str, str]) -> VerifiedNotification:
        self._verify_signature(fields)
        self._require(fields, "trade_order_id", "total_fee")
        self._require_paid(fields)
        try:
            amount_fen = parse_yuan_strict(fields["total_fee"], field="total_fee")
        except DomainValidationException as exc:
            raise PaymentNotificationError(
                "invalid amount", provider=self.provider, details={"field": exc.field}
            ) from exc
        sub_method = "alipay" if fields.get("type") == "alipay" else "wechat"
        return VerifiedNotification(
            provider=self.provider,
            order_no=fields["trade_order_id"],
            amount_fen=amount_fen,
            transaction_id=fields.get("out_trade_order") or fields.get("open_order_id") or "",
            method_label=f"xunhupay_{sub_method}",
            vendor_label=f"{self.vendor_name} ({'Alipay' if sub_method == 'alipay' else 'WeChat Pay'})",
            raw=dict(fields),
        )

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        cfg = self.credentials
        if not cfg.merchant_id:
            raise PaymentProviderError("XUNHUPAY configuration incomplete", provider=self.provider)
        params: dict[str, Any] = {
            "version": "1.1",
            "appid": cfg.merchant_id,
            "trade_order_id": req.order_no,
            "total_fee": format_yuan(req.amount_fen),
            "title": req.subject,
            "time": int(time.time()),
            "notify_url": self._notify_url(req),
            "return_url": req.return_url or cfg.return_url,
            "nonce_str": "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(16)),
            "type": "NATIVE",
        }
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params["hash"] = self.sign(params)

        path = "/payment/alipay.html" if req.pay_type == "alipay" else "/payment/do.html"
        gateway = (cfg.gateway or "https://api.xunhupay.com").rstrip("/")
        data = await self._post_form(f"{gateway}{path}", params)
        if str(data.get("errcode", data.get("err_code"))) != "0":
            raise PaymentProviderError(
                str(data.get("errmsg") or data.get("err_msg") or "create order failed"),
                provider=self.provider,
                provider_code=str(data.get("errcode", data.get("err_code"))),
            )
        self._log("payment_intent_created", order_no=req.order_no, open_order_id=data.get("openid"))
        return PaymentIntent(
            provider=self.provider,
            order_no=req.order_no,
            pay_url=data.get("url"),
            qr_code=data.get("url_qrcode"),
            provider_ref=data.get("openid") or data.get("order_id"),
        )
