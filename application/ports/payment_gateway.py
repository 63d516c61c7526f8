"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Notification handling (decode / verify / ack) is pure and does no IO;
only ``create_payment`` talks to the vendor.
"""
from __future__ import annotations

from typing import Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    Acknowledgement,
    CreatePayment,
    PaymentIntent,
    VerifiedNotification,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment channels."""

    provider: str

    def decode(
        self,
        body: bytes,
        query: Mapping[str, str],
        content_type: Optional[str] = None,
    ) -> dict[str, str]: ...

    def verify_notification(self, fields: Mapping[str, str]) -> VerifiedNotification: ...

    def success_ack(self) -> Acknowledgement: ...

    def fail_ack(self, message: str) -> Acknowledgement: ...

    async def create_payment(self, req: CreatePayment) -> PaymentIntent: ...

    async def aclose(self) -> None: ...
