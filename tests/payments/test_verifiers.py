import hashlib
import hmac
from urllib.parse import urlencode

import pytest

from application.dtos.payments import ChannelCredentials
from infrastructure.external.payments import get_payment_gateway, normalize_channel
from infrastructure.external.payments.base import canonical_string
from infrastructure.external.payments.epay_client import EpayClient
from infrastructure.external.payments.exceptions import (
    PaymentNotificationError,
    PaymentSignatureError,
)
from infrastructure.external.payments.simulated_client import SimulatedPaymentClient
from infrastructure.external.payments.wechatpay_client import WechatPayClient, parse_xml, to_xml
from infrastructure.external.payments.xunhupay_client import XunhupayClient

from tests.payments.vendor_payloads import (
    EPAY_KEY,
    WECHAT_KEY,
    XUNHU_SECRET,
    epay_notification,
    joined,
    md5,
    wechat_notification,
    xunhupay_notification,
)


@pytest.fixture
def wechat():
    return WechatPayClient(ChannelCredentials(channel="wechat", secret=WECHAT_KEY))


@pytest.fixture
def epay():
    return EpayClient(ChannelCredentials(channel="epay", secret=EPAY_KEY))


@pytest.fixture
def xunhupay():
    return XunhupayClient(ChannelCredentials(channel="xunhupay", secret=XUNHU_SECRET))


def test_canonical_string_skips_empty_and_excluded_fields():
    fields = {"b": "2", "a": "1", "sign": "x", "empty": "", "none": None}
    assert canonical_string(fields, exclude=("sign",)) == "a=1&b=2"


def test_wechat_sign_matches_documented_vector():
    client = WechatPayClient(ChannelCredentials(channel="wechat", secret=WECHAT_KEY))
    fields = {
        "appid": "wxd930ea5d5a258f4f",
        "mch_id": "10000100",
        "device_info": "1000",
        "body": "test",
        "nonce_str": "ibuaiVcKdpRxkhJA",
    }
    assert client.sign(fields) == "9A0A8659F005D6984697E2CA0A9CF3B7"


def test_wechat_decode_and_verify(wechat):
    body = to_xml(wechat_notification()).encode("utf-8")
    fields = wechat.decode(body, {}, "text/xml")
    n = wechat.verify_notification(fields)
    assert n.provider == "wechat"
    assert n.order_no == "SL20250101ABC"
    assert n.amount_fen == 990
    assert n.transaction_id == "4200000001202501010000000001"
    assert n.method_label == "wechat"


def test_wechat_bad_signature_rejected(wechat):
    fields = wechat_notification()
    fields["total_fee"] = "1"
    with pytest.raises(PaymentSignatureError):
        wechat.verify_notification(fields)


def test_wechat_lowercase_signature_rejected(wechat):
    fields = wechat_notification()
    fields["sign"] = fields["sign"].lower()
    with pytest.raises(PaymentSignatureError):
        wechat.verify_notification(fields)


def test_wechat_unsuccessful_result_rejected(wechat):
    with pytest.raises(PaymentNotificationError):
        wechat.verify_notification(wechat_notification(result_code="FAIL"))


def test_wechat_non_integer_fee_rejected(wechat):
    with pytest.raises(PaymentNotificationError):
        wechat.verify_notification(wechat_notification(total_fee="9.90"))


def test_wechat_missing_transaction_id_rejected(wechat):
    fields = wechat_notification()
    del fields["transaction_id"]
    fields["sign"] = md5(joined(fields, "sign") + f"&key={WECHAT_KEY}").upper()
    with pytest.raises(PaymentNotificationError):
        wechat.verify_notification(fields)


def test_wechat_decode_refuses_doctype(wechat):
    body = b'<?xml version="1.0"?><!DOCTYPE x [<!ENTITY e "boom">]><xml><a>&e;</a></xml>'
    with pytest.raises(PaymentNotificationError):
        wechat.decode(body, {}, "text/xml")


def test_wechat_decode_rejects_garbage(wechat):
    with pytest.raises(PaymentNotificationError):
        wechat.decode(b"not xml", {}, "text/xml")


def test_wechat_acks_are_xml(wechat):
    ok = wechat.success_ack()
    assert ok.media_type == "application/xml"
    assert parse_xml(ok.body) == {"return_code": "SUCCESS", "return_msg": "OK"}
    fail = wechat.fail_ack("amount mismatch")
    assert parse_xml(fail.body) == {"return_code": "FAIL", "return_msg": "amount mismatch"}
    assert not fail.accepted


def test_epay_verify(epay):
    n = epay.verify_notification(epay_notification())
    assert n.amount_fen == 990
    assert n.transaction_id == "2025010112345678"
    assert n.method_label == "epay_alipay"
    assert n.vendor_label == "Epay (Alipay)"


def test_epay_signature_ignores_sign_type_and_hex_case(epay):
    fields = epay_notification()
    fields["sign_type"] = "RSA"
    fields["sign"] = fields["sign"].upper()
    assert epay.verify_notification(fields).order_no == "SL20250101ABC"


def test_epay_tampered_amount_rejected(epay):
    fields = epay_notification()
    fields["money"] = "0.01"
    with pytest.raises(PaymentSignatureError):
        epay.verify_notification(fields)


def test_epay_pending_status_rejected(epay):
    with pytest.raises(PaymentNotificationError):
        epay.verify_notification(epay_notification(trade_status="WAIT_BUYER_PAY"))


def test_epay_missing_signature_rejected(epay):
    fields = epay_notification()
    del fields["sign"]
    with pytest.raises(PaymentSignatureError):
        epay.verify_notification(fields)


def test_epay_decode_posted_body_ignores_notify_url_query(epay):
    fields = epay.decode(b"money=9.90&trade_status=TRADE_SUCCESS", {"channel": "epay", "money": "1.00"})
    assert fields == {"money": "9.90", "trade_status": "TRADE_SUCCESS"}


def test_epay_decode_reads_query_when_body_empty(epay):
    assert epay.decode(b"", {"out_trade_no": "A1", "money": "9.90"}) == {"out_trade_no": "A1", "money": "9.90"}


def test_posted_notification_verifies_despite_notify_url_query(epay):
    body = urlencode(epay_notification()).encode("utf-8")
    fields = epay.decode(body, {"from": "notify-url"}, "application/x-www-form-urlencoded")
    assert epay.verify_notification(fields).amount_fen == 990


@pytest.mark.parametrize("money", ["9.895", "1e1", "-9.90", "+9.90", "9.", ".90", " 9 90"])
def test_epay_amount_must_be_plain_two_decimal_yuan(epay, money):
    with pytest.raises(PaymentNotificationError) as info:
        epay.verify_notification(epay_notification(money=money))
    assert info.value.message == "invalid amount"


def test_epay_amount_with_one_decimal_accepted(epay):
    assert epay.verify_notification(epay_notification(money="9.9")).amount_fen == 990


def test_epay_decode_empty_rejected(epay):
    with pytest.raises(PaymentNotificationError):
        epay.decode(b"", {})


def test_text_acks(epay):
    assert epay.success_ack().body == "success"
    assert epay.success_ack().media_type == "text/plain"
    assert epay.fail_ack("order not found").body == "fail: order not found"


def test_xunhupay_verify(xunhupay):
    n = xunhupay.verify_notification(xunhupay_notification())
    assert n.order_no == "SL20250101ABC"
    assert n.amount_fen == 990
    assert n.transaction_id == "XH2025010100001"
    assert n.method_label == "xunhupay_wechat"


def test_xunhupay_alipay_label_and_transaction_fallback(xunhupay):
    fields = xunhupay_notification(type="alipay", out_trade_order="")
    n = xunhupay.verify_notification(fields)
    assert n.method_label == "xunhupay_alipay"
    assert n.transaction_id == "OPEN0001"


def test_xunhupay_signature_lives_in_hash_field(xunhupay):
    fields = xunhupay_notification()
    fields["sign"] = fields.pop("hash")
    with pytest.raises(PaymentSignatureError):
        xunhupay.verify_notification(fields)


def test_xunhupay_unpaid_status_rejected(xunhupay):
    with pytest.raises(PaymentNotificationError):
        xunhupay.verify_notification(xunhupay_notification(status="WP"))


def test_xunhupay_amount_is_not_rounded(xunhupay):
    with pytest.raises(PaymentNotificationError):
        xunhupay.verify_notification(xunhupay_notification(total_fee="9.895"))


def test_empty_secret_refuses_verification():
    client = EpayClient(ChannelCredentials(channel="epay"))
    fields = epay_notification()
    with pytest.raises(PaymentSignatureError):
        client.verify_notification(fields)


def test_simulated_notification_round_trip():
    client = SimulatedPaymentClient(ChannelCredentials(channel="test", secret="s3cret"))
    fields = client.build_notification("SL20250101ABC", 990, trade_no="T1")
    expected = hmac.new(b"s3cret", joined(fields, "sign").encode(), hashlib.sha256).hexdigest()
    assert fields["sign"] == expected
    n = client.verify_notification(fields)
    assert (n.amount_fen, n.transaction_id, n.method_label) == (990, "T1", "test")


def test_simulated_unpaid_notification_rejected():
    client = SimulatedPaymentClient(ChannelCredentials(channel="test", secret="s3cret"))
    with pytest.raises(PaymentNotificationError):
        client.verify_notification(client.build_notification("SL1", 990, paid=False))


def test_factory_and_aliases():
    assert normalize_channel(" WeChat-Pay ") == "wechat"
    assert normalize_channel("hupijiao") == "xunhupay"
    gateway = get_payment_gateway(ChannelCredentials(channel="wechatpay", secret="k"))
    assert isinstance(gateway, WechatPayClient)
    with pytest.raises(ValueError):
        get_payment_gateway(ChannelCredentials(channel="stripe", secret="k"))
