"""
Payment specific codes and vendor notification vocabulary.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    NOTIFICATION_INVALID = 60004


# Field carrying the signature in each vendor's notification
SIGNATURE_FIELD = {
    "wechat": "sign",
    "epay": "sign",
    "xunhupay": "hash",
    "test": "sign",
}

# Vendor status field → token meaning "paid"
PAID_STATUS = {
    "wechat": {"return_code": "SUCCESS", "result_code": "SUCCESS"},
    "epay": {"trade_status": "TRADE_SUCCESS"},
    "xunhupay": {"status": "OD"},
    "test": {"trade_status": "TRADE_SUCCESS"},
}

# Display names for vendor payment sub-methods (used in order remarks)
PAY_TYPE_NAMES = {
    "alipay": "Alipay",
    "wxpay": "WeChat Pay",
    "wechat": "WeChat Pay",
    "qqpay": "QQ Wallet",
}
