"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Values here are the process-environment fallback for each channel; an enabled
row in the ``payment_channels`` table always wins over them.
Example: ``PAYMENT__EPAY__PID=1001``, ``PAYMENT__WEBHOOK__SETTLE_TIMEOUT_SECONDS=3``.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks
    # Upper bound for one settlement transaction; the vendor retries on timeout.
    settle_timeout_seconds: float = 5.0


class WechatSettings(BaseModel):
    app_id: Optional[str] = None
    mch_id: Optional[str] = None
    api_key: Optional[str] = None
    gateway: str = "https://api.mch.weixin.qq.com"


class EpaySettings(BaseModel):
    pid: Optional[str] = None
    key: Optional[str] = None
    gateway: Optional[str] = None


class XunhupaySettings(BaseModel):
    appid: Optional[str] = None
    app_secret: Optional[str] = None
    gateway: str = "https://api.xunhupay.com"


class TestChannelSettings(BaseModel):
    # The simulated channel is off unless explicitly enabled.
    enabled: bool = False
    secret: Optional[str] = None
    delay: float = 0.0
    auto_success: bool = True


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    wechat: WechatSettings = Field(default_factory=WechatSettings)
    epay: EpaySettings = Field(default_factory=EpaySettings)
    xunhupay: XunhupaySettings = Field(default_factory=XunhupaySettings)
    test: TestChannelSettings = Field(default_factory=TestChannelSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
