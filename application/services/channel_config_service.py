"""
Resolve payment channel credentials.

An enabled ``payment_channels`` row with a usable secret wins; otherwise the
process environment (``PaymentSettings``) is used. A channel with neither is
not configured and ``resolve`` returns ``None``.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import ChannelCredentials
from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.shop.entity import PaymentChannelConfig


logger = get_logger(__name__)

# 回调路径与通道编码不完全一致（wechat → wechat-pay）
NOTIFY_PATHS = {
    "wechat": "wechat-pay",
    "epay": "epay",
    "xunhupay": "xunhupay",
    "test": "test-pay",
}


class ChannelConfigService:
    def __init__(
        self,
        uow_factory: Callable[[], AbstractUnitOfWork],
        payment_settings: PaymentSettings,
        *,
        site_url: str,
        test_secret_fallback: Optional[str] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._payment_settings = payment_settings
        self._site_url = site_url.rstrip("/")
        self._test_secret_fallback = test_secret_fallback

    def default_notify_url(self, channel: str) -> str:
        return f"{self._site_url}/api/v1/shop/{NOTIFY_PATHS.get(channel, channel)}/notify"

    async def resolve(self, channel: str) -> Optional[ChannelCredentials]:
        row = await self._load(channel)
        if row is not None and row.enabled:
            creds = self._from_row(row)
            if creds is not None:
                return creds
            logger.warning("payment_channel_config_incomplete", channel=channel, source="db")
        return self._from_env(channel)

    async def _load(self, channel: str) -> Optional[PaymentChannelConfig]:
        async with self._uow_factory() as uow:
            return await uow.channel_repository.get_by_code(channel)

    def _from_row(self, row: PaymentChannelConfig) -> Optional[ChannelCredentials]:
        code = row.code
        if code == "wechat":
            secret = row.get("apiKey", "api_key")
            merchant_id = row.get("mchId", "mch_id")
            app_id = row.get("appId", "app_id")
        elif code == "epay":
            secret = row.get("key")
            merchant_id = row.get("pid")
            app_id = None
        elif code == "xunhupay":
            secret = row.get("appSecret", "app_secret")
            merchant_id = row.get("appid")
            app_id = None
        elif code == "test":
            secret = row.get("secret") or self._test_secret_fallback
            merchant_id = None
            app_id = None
        else:
            return None
        if not secret:
            return None
        options: dict = {}
        if code == "test":
            options = {
                "delay": float(row.config.get("delay") or 0),
                "auto_success": bool(row.config.get("autoSuccess", True)),
            }
        return ChannelCredentials(
            channel=code,
            secret=secret,
            merchant_id=merchant_id,
            app_id=app_id,
            gateway=row.get("gateway", "apiUrl"),
            notify_url=row.get("notifyUrl", "notify_url") or self.default_notify_url(code),
            return_url=row.get("returnUrl", "return_url"),
            source="db",
            options=options,
        )

    def _from_env(self, channel: str) -> Optional[ChannelCredentials]:
        ps = self._payment_settings
        if channel == "wechat" and ps.wechat.api_key:
            return ChannelCredentials(
                channel=channel,
                secret=ps.wechat.api_key,
                merchant_id=ps.wechat.mch_id,
                app_id=ps.wechat.app_id,
                gateway=ps.wechat.gateway,
                notify_url=self.default_notify_url(channel),
            )
        if channel == "epay" and ps.epay.key:
            return ChannelCredentials(
                channel=channel,
                secret=ps.epay.key,
                merchant_id=ps.epay.pid,
                gateway=ps.epay.gateway,
                notify_url=self.default_notify_url(channel),
                return_url=f"{self._site_url}/orders",
            )
        if channel == "xunhupay" and ps.xunhupay.app_secret:
            return ChannelCredentials(
                channel=channel,
                secret=ps.xunhupay.app_secret,
                merchant_id=ps.xunhupay.appid,
                gateway=ps.xunhupay.gateway,
                notify_url=self.default_notify_url(channel),
                return_url=f"{self._site_url}/orders",
            )
        if channel == "test" and ps.test.enabled:
            secret = ps.test.secret or self._test_secret_fallback
            if not secret:
                return None
            return ChannelCredentials(
                channel=channel,
                secret=secret,
                notify_url=self.default_notify_url(channel),
                options={"delay": ps.test.delay, "auto_success": ps.test.auto_success},
            )
        return None
