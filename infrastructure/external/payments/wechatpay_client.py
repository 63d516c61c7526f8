"""
WeChat Pay v2 adapter (XML + MD5 ``&key=`` signatures).

Features used:
- NATIVE unified order (``pay/unifiedorder``) returning a ``code_url`` for QR display
- Notification decoding from XML and signature/status verification
"""
from __future__ import annotations

import hashlib
import secrets
import string
from typing import Any, Mapping, Optional
from xml.etree import ElementTree

import httpx

from application.dtos.payments import (
    Acknowledgement,
    CreatePayment,
    PaymentIntent,
    VerifiedNotification,
)
from domain.common.exceptions import DomainValidationException
from domain.shop.money import parse_fen
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentNotificationError,
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)

_NONCE_ALPHABET = string.ascii_letters + string.digits


def _cdata(value: Any) -> str:
    text = str(value).replace("]]>", "]]]]><![CDATA[>")
    return f"<![CDATA[{text}]]>"


def to_xml(fields: Mapping[str, Any]) -> str:
    """Flat mapping to WeChat's ``<xml>`` envelope, values wrapped in CDATA."""
    inner = "".join(
        f"<{k}>{_cdata(v)}</{k}>" for k, v in fields.items() if v is not None and str(v) != ""
    )
    return f"<xml>{inner}</xml>"


def parse_xml(body: bytes | str) -> dict[str, str]:
    """``<xml><k>v</k>...</xml>`` into a flat mapping; DTDs are refused."""
    raw = body.encode("utf-8") if isinstance(body, str) else body
    if b"<!DOCTYPE" in raw or b"<!ENTITY" in raw:
        raise ValueError("DTD is not allowed in payment XML")
    root = ElementTree.fromstring(raw)
    return {child.tag: (child.text or "") for child in root}


class WechatPayClient(BasePaymentClient):
    provider = "wechat"
    vendor_name = "WeChat Pay"
    signature_case_insensitive = False

    def sign(self, fields: Mapping[str, Any]) -> str:
        payload = f"{self._signed_payload(fields)}&key={self.credentials.secret}"
        return hashlib.md5(payload.encode("utf-8")).hexdigest().upper()

    def decode(
        self,
        body: bytes,
        query: Mapping[str, str],
        content_type: Optional[str] = None,
    ) -> dict[str, str]:
        if not body:
            raise PaymentNotificationError("empty notification", provider=self.provider)
        try:
            fields = parse_xml(body)
        except (ElementTree.ParseError, ValueError) as exc:
            raise PaymentNotificationError(f"malformed XML: {exc}", provider=self.provider) from exc
        if not fields:
            raise PaymentNotificationError("empty notification", provider=self.provider)
        return fields

    def verify_notification(self, fields: Mapping[str, str]) -> VerifiedNotification:
        self._verify_signature(fields)
        self._require_paid(fields)
        self._require(fields, "out_trade_no", "transaction_id", "total_fee")
        try:
            amount_fen = parse_fen(fields["total_fee"])
        except DomainValidationException as exc:
            raise PaymentNotificationError(
                "invalid amount", provider=self.provider, details={"field": exc.field}
            ) from exc
        return VerifiedNotification(
            provider=self.provider,
            order_no=fields["out_trade_no"],
            amount_fen=amount_fen,
            transaction_id=fields["transaction_id"],
            method_label="wechat",
            vendor_label=self.vendor_name,
            raw=dict(fields),
        )

    def success_ack(self) -> Acknowledgement:
        body = to_xml({"return_code": "SUCCESS", "return_msg": "OK"})
        return Acknowledgement(body=body, media_type="application/xml", accepted=True)

    def fail_ack(self, message: str) -> Acknowledgement:
        body = to_xml({"return_code": "FAIL", "return_msg": message or "FAIL"})
        return Acknowledgement(body=body, media_type="application/xml", accepted=False)

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        cfg = self.credentials
        if not (cfg.app_id and cfg.merchant_id):
            raise PaymentProviderError("WECHAT configuration incomplete", provider=self.provider)
        params: dict[str, Any] = {
            "appid": cfg.app_id,
            "mch_id": cfg.merchant_id,
            "nonce_str": "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(32)),
            "body": req.subject[:128],
            "out_trade_no": req.order_no,
            "total_fee": req.amount_fen,
            "spbill_create_ip": req.client_ip or "127.0.0.1",
            "notify_url": self._notify_url(req),
            "trade_type": "NATIVE",
            "product_id": req.order_no,
        }
        params["sign"] = self.sign(params)
        url = f"{(cfg.gateway or 'https://api.mch.weixin.qq.com').rstrip('/')}/pay/unifiedorder"

        async def _call():
            async with self.client() as http:
                return await http.post(
                    url,
                    content=to_xml(params).encode("utf-8"),
                    headers={"Content-Type": "application/xml"},
                )

        try:
            resp = await self._retry(_call)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise PaymentRecoverableError(str(exc) or "gateway unreachable", provider=self.provider) from exc
        if resp.status_code >= 500:
            raise PaymentRecoverableError(f"gateway returned {resp.status_code}", provider=self.provider)
        try:
            data = parse_xml(resp.content)
        except (ElementTree.ParseError, ValueError) as exc:
            raise PaymentProviderError("gateway returned malformed XML", provider=self.provider) from exc

        if data.get("return_code") != "SUCCESS":
            raise PaymentProviderError(
                data.get("return_msg") or "unified order failed",
                provider=self.provider,
                provider_code=data.get("return_code"),
            )
        if data.get("sign"):
            try:
                self._verify_signature(data)
            except PaymentSignatureError as exc:
                raise PaymentProviderError("gateway response signature mismatch", provider=self.provider) from exc
        if data.get("result_code") != "SUCCESS":
            raise PaymentProviderError(
                data.get("err_code_des") or "unified order failed",
                provider=self.provider,
                provider_code=data.get("err_code"),
            )
        self._log("payment_intent_created", order_no=req.order_no, prepay_id=data.get("prepay_id"))
        return PaymentIntent(
            provider=self.provider,
            order_no=req.order_no,
            qr_code=data.get("code_url"),
            provider_ref=data.get("prepay_id"),
            params={"trade_type": data.get("trade_type", "NATIVE")},
        )
