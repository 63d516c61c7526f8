"""Signed vendor notification payloads, computed independently of the adapters."""
import hashlib

WECHAT_KEY = "192006250b4c09247ec02edce69f6a2d"
EPAY_KEY = "epay-merchant-key"
XUNHU_SECRET = "xunhu-app-secret"


def md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def joined(fields: dict, *skip: str) -> str:
    return "&".join(f"{k}={fields[k]}" for k in sorted(fields) if k not in skip and fields[k] != "")


def wechat_notification(key: str = WECHAT_KEY, **overrides) -> dict:
    fields = {
        "appid": "wx2421b1c4370ec43b",
        "mch_id": "10000100",
        "nonce_str": "5d2b6c2a8db53831f7eda20af46e531c",
        "return_code": "SUCCESS",
        "result_code": "SUCCESS",
        "out_trade_no": "SL20250101ABC",
        "transaction_id": "4200000001202501010000000001",
        "total_fee": "990",
        "trade_type": "NATIVE",
    }
    fields.update(overrides)
    fields["sign"] = md5(joined(fields, "sign") + f"&key={key}").upper()
    return fields


def epay_notification(key: str = EPAY_KEY, **overrides) -> dict:
    fields = {
        "pid": "1001",
        "trade_no": "2025010112345678",
        "out_trade_no": "SL20250101ABC",
        "type": "alipay",
        "name": "Test product",
        "money": "9.90",
        "trade_status": "TRADE_SUCCESS",
        "sign_type": "MD5",
    }
    fields.update(overrides)
    fields["sign"] = md5(joined(fields, "sign", "sign_type") + key)
    return fields


def xunhupay_notification(key: str = XUNHU_SECRET, **overrides) -> dict:
    fields = {
        "appid": "201906120001",
        "trade_order_id": "SL20250101ABC",
        "out_trade_order": "XH2025010100001",
        "open_order_id": "OPEN0001",
        "total_fee": "9.90",
        "status": "OD",
        "type": "wechat",
        "time": "1735689600",
        "nonce_str": "abcdef",
    }
    fields.update(overrides)
    fields["hash"] = md5(joined(fields, "hash") + key)
    return fields
