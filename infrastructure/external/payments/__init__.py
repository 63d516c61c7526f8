"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from application.dtos.payments import ChannelCredentials
from application.ports.payment_gateway import PaymentGateway
from core.settings import payment_settings


_ALIASES = {
    "wechatpay": "wechat",
    "wechat-pay": "wechat",
    "wx": "wechat",
    "hupijiao": "xunhupay",
}


def normalize_channel(name: str) -> str:
    key = (name or "").strip().lower()
    return _ALIASES.get(key, key)


def get_payment_gateway(credentials: ChannelCredentials) -> PaymentGateway:
    name = normalize_channel(credentials.channel)
    kwargs = {
        "timeouts": payment_settings.timeouts.model_dump(),
        "retry": {"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
    }
    if name == "wechat":
        from .wechatpay_client import WechatPayClient
        return WechatPayClient(credentials, **kwargs)
    if name == "epay":
        from .epay_client import EpayClient
        return EpayClient(credentials, **kwargs)
    if name == "xunhupay":
        from .xunhupay_client import XunhupayClient
        return XunhupayClient(credentials, **kwargs)
    if name == "test":
        from .simulated_client import SimulatedPaymentClient
        return SimulatedPaymentClient(
            credentials,
            auto_success=bool(credentials.options.get("auto_success", True)),
            delay=float(credentials.options.get("delay", 0.0)),
            **kwargs,
        )
    raise ValueError(f"Unsupported payment provider: {name}")
