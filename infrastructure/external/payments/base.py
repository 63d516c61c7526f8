"""
Base payment client implementing shared concerns: http, retry, logging,
and the canonical-string signature scheme shared by the MD5 vendors.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

import hmac
from typing import Any, Callable, Iterable, Mapping, Optional
from contextlib import asynccontextmanager
from urllib.parse import parse_qsl

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    Acknowledgement,
    ChannelCredentials,
    CreatePayment,
    PaymentIntent,
    VerifiedNotification,
)
from application.ports.payment_gateway import PaymentGateway
from infrastructure.external.payments.exceptions import (
    PaymentNotificationError,
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from shared.codes.payment_codes import PAID_STATUS, SIGNATURE_FIELD


logger = get_logger(__name__)


def canonical_string(fields: Mapping[str, Any], exclude: Iterable[str] = ()) -> str:
    """Non-empty fields minus ``exclude``, sorted by key, joined as ``k=v&k=v``."""
    skip = set(exclude)
    pairs = sorted(
        (k, str(v)) for k, v in fields.items()
        if k not in skip and v is not None and str(v) != ""
    )
    return "&".join(f"{k}={v}" for k, v in pairs)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"
    vendor_name: str = "Base"
    # Extra fields left out of the canonical string besides the signature itself
    unsigned_fields: tuple[str, ...] = ()
    # Whether received signatures are compared ignoring hex case
    signature_case_insensitive: bool = True

    def __init__(
        self,
        credentials: ChannelCredentials,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.credentials = credentials
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def signature_field(self) -> str:
        return SIGNATURE_FIELD.get(self.provider, "sign")

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _post_form(self, url: str, data: Mapping[str, Any]) -> dict[str, Any]:
        """POST a form to the vendor and return its JSON body."""

        async def _call():
            async with self.client() as http:
                return await http.post(url, data={k: str(v) for k, v in data.items()})

        try:
            resp = await self._retry(_call)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise PaymentRecoverableError(str(exc) or "gateway unreachable", provider=self.provider) from exc
        if resp.status_code >= 500:
            raise PaymentRecoverableError(f"gateway returned {resp.status_code}", provider=self.provider)
        try:
            return resp.json()
        except ValueError as exc:
            raise PaymentProviderError("gateway returned a non-JSON body", provider=self.provider) from exc

    # Notification handling (pure, no IO)
    def decode(
        self,
        body: bytes,
        query: Mapping[str, str],
        content_type: Optional[str] = None,
    ) -> dict[str, str]:
        """
        Form body into a flat mapping; the query string is used only when the body
        is empty (GET callbacks). Query parameters of the notify URL itself never
        join a POSTed field set.
        """
        if body:
            try:
                text = body.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise PaymentNotificationError("body is not valid UTF-8", provider=self.provider) from exc
            fields = dict(parse_qsl(text, keep_blank_values=True))
        else:
            fields = dict(query)
        if not fields:
            raise PaymentNotificationError("empty notification", provider=self.provider)
        return fields

    def sign(self, fields: Mapping[str, Any]) -> str:
        raise NotImplementedError

    def _signed_payload(self, fields: Mapping[str, Any]) -> str:
        return canonical_string(fields, exclude=(self.signature_field, *self.unsigned_fields))

    def _verify_signature(self, fields: Mapping[str, str]) -> None:
        if not self.credentials.secret:
            raise PaymentSignatureError("channel secret is not configured", provider=self.provider)
        received = fields.get(self.signature_field)
        if not received:
            raise PaymentSignatureError(
                f"missing signature field '{self.signature_field}'", provider=self.provider
            )
        expected = self.sign(fields)
        if self.signature_case_insensitive:
            received, expected = received.lower(), expected.lower()
        if not hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8")):
            raise PaymentSignatureError("signature mismatch", provider=self.provider)

    def _require(self, fields: Mapping[str, str], *names: str) -> None:
        missing = [n for n in names if not fields.get(n)]
        if missing:
            raise PaymentNotificationError(
                f"missing required fields: {', '.join(missing)}",
                provider=self.provider,
                details={"missing": missing},
            )

    def _require_paid(self, fields: Mapping[str, str]) -> None:
        for name, token in PAID_STATUS.get(self.provider, {}).items():
            value = fields.get(name)
            if not value:
                raise PaymentNotificationError(f"missing status field '{name}'", provider=self.provider)
            if value != token:
                raise PaymentNotificationError(
                    f"payment not successful: {name}={value}",
                    provider=self.provider,
                    details={name: value},
                )

    def verify_notification(self, fields: Mapping[str, str]) -> VerifiedNotification:
        raise NotImplementedError

    def success_ack(self) -> Acknowledgement:
        return Acknowledgement(body="success", media_type="text/plain", accepted=True)

    def fail_ack(self, message: str) -> Acknowledgement:
        return Acknowledgement(body=f"fail: {message}", media_type="text/plain", accepted=False)

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        raise NotImplementedError

    def _notify_url(self, req: CreatePayment) -> Optional[str]:
        return req.notify_url or self.credentials.notify_url

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
