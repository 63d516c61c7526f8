"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChannelCredentials(BaseModel):
    """Resolved secrets for one channel (config store first, env fallback)."""

    channel: str
    secret: str = ""  # empty: decode/ack only, verification refused
    merchant_id: Optional[str] = None  # wechat mch_id / epay pid / xunhupay appid
    app_id: Optional[str] = None
    gateway: Optional[str] = None
    notify_url: Optional[str] = None
    return_url: Optional[str] = None
    source: str = "env"  # "db" or "env"
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class VerifiedNotification(BaseModel):
    """A notification whose signature and paid status have been checked."""

    provider: str
    order_no: str
    amount_fen: int
    transaction_id: str
    method_label: str
    vendor_label: str
    raw: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class Acknowledgement(BaseModel):
    """Body returned to the vendor; always sent with HTTP 200."""

    body: str
    media_type: str = "text/plain"
    accepted: bool = False


class CreatePayment(BaseModel):
    order_no: str
    amount_fen: int = Field(gt=0)
    subject: str
    pay_type: Optional[str] = None
    client_ip: Optional[str] = None
    notify_url: Optional[str] = None
    return_url: Optional[str] = None


class PaymentIntent(BaseModel):
    provider: str
    order_no: str
    pay_url: Optional[str] = None
    qr_code: Optional[str] = None
    provider_ref: Optional[str] = None
    params: Optional[dict[str, Any]] = None
    # Only set by the simulated channel: the signed notification it would send.
    notification: Optional[dict[str, str]] = None


class PayRequest(BaseModel):
    order_no: str = Field(min_length=1, max_length=64)
    pay_type: Optional[str] = Field(default=None, max_length=20)


class SimulatedPayRequest(BaseModel):
    order_no: str = Field(min_length=1, max_length=64)
