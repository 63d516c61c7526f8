from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.shop.entity import Membership, MembershipType, Order, OrderStatus, Product, ProductType
from domain.shop.money import format_yuan, parse_fen, parse_yuan_strict, yuan_to_fen
from domain.shop.service import SettlementOutcome, SettlementResult, generate_order_no


def _order(**kwargs) -> Order:
    data = dict(id=1, order_no="SL1", product_id=1, user_id=1, amount=Decimal("9.90"))
    data.update(kwargs)
    return Order(**data)


def test_yuan_to_fen_rounds_at_cent_granularity():
    assert yuan_to_fen("9.90") == 990
    assert yuan_to_fen("19.99") == 1999
    assert yuan_to_fen(Decimal("0.015")) == 2
    assert yuan_to_fen(0.1) == 10
    assert format_yuan(990) == "9.90"


@pytest.mark.parametrize("bad", ["abc", "", "NaN", "Infinity"])
def test_yuan_to_fen_rejects_garbage(bad):
    with pytest.raises(DomainValidationException):
        yuan_to_fen(bad)


def test_parse_yuan_strict_never_rounds():
    assert parse_yuan_strict("9.90") == 990
    assert parse_yuan_strict("9.9") == 990
    assert parse_yuan_strict("10") == 1000
    for bad in ("9.895", "1e1", "-9.90", "+9.90", "NaN", ""):
        with pytest.raises(DomainValidationException):
            parse_yuan_strict(bad)


def test_parse_fen_accepts_only_digits():
    assert parse_fen("990") == 990
    for bad in ("9.90", "-1", "", " 1e3"):
        with pytest.raises(DomainValidationException):
            parse_fen(bad)


def test_order_amount_is_immutable():
    order = _order()
    with pytest.raises(DomainValidationException):
        order.amount = Decimal("1.00")
    with pytest.raises(DomainValidationException):
        _order(amount=Decimal("0"))


def test_order_transitions():
    order = _order()
    order.mark_paid(payment_method="wechat", remark="WeChat Pay transaction: X")
    assert order.status == OrderStatus.PAID and order.is_settled
    with pytest.raises(DomainValidationException):
        order.mark_paid(payment_method="wechat", remark="again")
    with pytest.raises(DomainValidationException):
        order.cancel()
    order.complete()
    assert order.status == OrderStatus.COMPLETED and order.is_settled


def test_product_key_requirement():
    assert Product(id=1, name="k", price="1", type=ProductType.SERIAL_KEY, stock=0).requires_key
    assert not Product(id=1, name="k", price="1", type=ProductType.SERIAL_KEY, stock=-1).requires_key
    assert not Product(id=1, name="m", price="1", type=ProductType.MEMBERSHIP, duration=30).requires_key


def test_membership_start_and_extend():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    m = Membership.start(1, 365, now)
    assert m.type == MembershipType.YEARLY
    assert m.end_date == now + timedelta(days=365)
    assert Membership.start(1, 30, now).type == MembershipType.MONTHLY

    m.active = False
    assert m.extend(30, now) == now + timedelta(days=395)
    assert m.active
    assert m.is_valid(now)
    assert not m.is_valid(now + timedelta(days=400))


def test_generate_order_no_format():
    no = generate_order_no(datetime(2025, 1, 2, tzinfo=timezone.utc))
    assert no.startswith("ORD20250102") and len(no) == 19


def test_settlement_result_flags():
    assert SettlementResult(SettlementOutcome.ALREADY_SETTLED, "x").acknowledged
    assert not SettlementResult(SettlementOutcome.SETTLED, "x", key_required=True, key_assigned=True).needs_operator
    assert SettlementResult(SettlementOutcome.SETTLED, "x", key_required=True).needs_operator
    assert not SettlementResult(SettlementOutcome.AMOUNT_MISMATCH, "x").acknowledged
