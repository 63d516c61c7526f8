"""
金额换算 - 结算路径统一使用整数分（fen）

厂商金额有两种形态：微信 total_fee 为整数分，epay/虎皮椒为两位小数的元字符串。
入口处统一换算为分，比较与存储都不再经过浮点数。
"""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from domain.common.exceptions import DomainValidationException

AmountLike = Union[Decimal, str, int, float]

_CENT = Decimal("0.01")
_FEN_PER_YUAN = 100
# 厂商元金额：非负、无指数、至多两位小数
_VENDOR_YUAN = re.compile(r"[0-9]+(?:\.[0-9]{1,2})?")


def to_decimal(amount: AmountLike) -> Decimal:
    """解析为保留两位小数的 Decimal（元）"""
    try:
        if isinstance(amount, float):
            value = Decimal(str(amount))
        elif isinstance(amount, str):
            value = Decimal(amount.strip())
        else:
            value = Decimal(amount)
    except (InvalidOperation, ValueError, TypeError):
        raise DomainValidationException(f"无效的金额: {amount!r}", field="amount")
    if not value.is_finite():
        raise DomainValidationException(f"无效的金额: {amount!r}", field="amount")
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def yuan_to_fen(amount: AmountLike) -> int:
    """元 -> 分，四舍五入到分"""
    return int(to_decimal(amount) * _FEN_PER_YUAN)


def parse_yuan_strict(value: str, field: str = "money") -> int:
    """
    解析厂商回调中的元金额字符串为分，不做任何舍入。

    "9.90"、"9.9"、"10" 合法；"9.895"、"1e1"、"-9.90"、"+9.90" 一律拒绝。
    """
    text = str(value).strip()
    if not _VENDOR_YUAN.fullmatch(text):
        raise DomainValidationException(f"无效的金额: {value!r}", field=field)
    return int(Decimal(text) * _FEN_PER_YUAN)


def parse_fen(value: str | int) -> int:
    """解析整数分（微信 total_fee），不接受小数"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if not re.fullmatch(r"[0-9]+", text):
        raise DomainValidationException(f"无效的分金额: {value!r}", field="total_fee")
    return int(text)


def fen_to_yuan(fen: int) -> Decimal:
    """分 -> 元（两位小数）"""
    return (Decimal(fen) / _FEN_PER_YUAN).quantize(_CENT)


def format_yuan(fen: int) -> str:
    """格式化为厂商需要的 "9.90" 形式"""
    return f"{fen_to_yuan(fen):.2f}"
