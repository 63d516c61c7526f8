import httpx
import pytest

from api.dependencies import get_gateway_factory
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.epay_client import EpayClient


@pytest.mark.asyncio
async def test_orders_require_authentication(client):
    resp = await client.get("/api/v1/shop/orders")
    assert resp.status_code == 401
    assert resp.json()["code"] == 30001


@pytest.mark.asyncio
async def test_expired_and_forged_tokens_rejected(client, make_token):
    expired = await client.get(
        "/api/v1/shop/orders", headers={"Authorization": f"Bearer {make_token(1, expires_in=-10)}"}
    )
    forged = await client.get("/api/v1/shop/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert expired.status_code == 401 and expired.json()["code"] == 30004
    assert forged.status_code == 401 and forged.json()["code"] == 30003


@pytest.mark.asyncio
async def test_create_and_poll_order(client, seed, auth_headers):
    product = await seed.product(price="9.90")
    await seed.keys(product.id, 1)

    created = await client.post("/api/v1/shop/orders", json={"product_id": product.id}, headers=auth_headers)
    assert created.status_code == 200
    data = created.json()["data"]
    assert data["amount"] == "9.90"
    assert data["status"] == "pending"

    polled = await client.get(f"/api/v1/shop/orders/{data['order_no']}", headers=auth_headers)
    assert polled.json()["data"]["order_no"] == data["order_no"]

    listed = await client.get("/api/v1/shop/orders", params={"status": "pending"}, headers=auth_headers)
    assert [o["order_no"] for o in listed.json()["data"]] == [data["order_no"]]


@pytest.mark.asyncio
async def test_cookie_token_is_accepted(client, seed, make_token):
    product = await seed.product(stock=-1)
    await seed.order(product.id, order_no="SL-COOKIE", user_id=5)
    client.cookies.set("auth_token", make_token(5))

    resp = await client.get("/api/v1/shop/orders/SL-COOKIE")

    assert resp.status_code == 200
    assert resp.json()["data"]["order_no"] == "SL-COOKIE"


@pytest.mark.asyncio
async def test_foreign_order_is_forbidden_and_unknown_is_404(client, seed, auth_headers):
    product = await seed.product(stock=-1)
    await seed.order(product.id, order_no="SL-OTHER", user_id=2)

    forbidden = await client.get("/api/v1/shop/orders/SL-OTHER", headers=auth_headers)
    missing = await client.get("/api/v1/shop/orders/SL-NONE", headers=auth_headers)

    assert forbidden.status_code == 403
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_cancel_twice_conflicts(client, seed, auth_headers):
    product = await seed.product(stock=-1)
    await seed.order(product.id, order_no="SL-CANCEL", user_id=1)

    first = await client.post("/api/v1/shop/orders/SL-CANCEL/cancel", headers=auth_headers)
    second = await client.post("/api/v1/shop/orders/SL-CANCEL/cancel", headers=auth_headers)

    assert first.json()["data"]["status"] == "cancelled"
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_simulated_payment_settles_through_ingress(client, seed, auth_headers):
    product = await seed.product(price="30.00", type="membership", stock=-1, duration=30)
    await seed.order(product.id, order_no="SL-TESTPAY", amount="30.00", user_id=1)

    resp = await client.post("/api/v1/shop/test-pay", json={"order_no": "SL-TESTPAY"}, headers=auth_headers)

    body = resp.json()
    assert resp.status_code == 200
    assert body["data"]["accepted"] is True
    assert body["data"]["order"]["status"] == "paid"
    assert body["data"]["order"]["payment_method"] == "test"

    membership = await client.get("/api/v1/shop/membership", headers=auth_headers)
    assert membership.json()["data"]["active"] is True

    again = await client.post("/api/v1/shop/test-pay", json={"order_no": "SL-TESTPAY"}, headers=auth_headers)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_simulated_payment_requires_enabled_channel(app, client, seed, auth_headers, uow_factory):
    from api.dependencies import get_channel_config_service
    from application.services.channel_config_service import ChannelConfigService
    from core.settings import PaymentSettings

    app.dependency_overrides[get_channel_config_service] = lambda: ChannelConfigService(
        uow_factory, PaymentSettings(), site_url="http://testserver", test_secret_fallback="x"
    )
    product = await seed.product(stock=-1)
    await seed.order(product.id, order_no="SL-NOTEST", user_id=1)

    resp = await client.post("/api/v1/shop/test-pay", json={"order_no": "SL-NOTEST"}, headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json()["code"] == 20120
    assert (await seed.get_order("SL-NOTEST")).status == "pending"


@pytest.mark.asyncio
async def test_epay_payment_creation_calls_gateway(app, client, seed, auth_headers):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"code": 1, "trade_no": "EP001", "payurl": "https://epay.example.com/pay/EP001"})

    def factory(credentials):
        if credentials.channel == "epay":
            return EpayClient(credentials, transport=httpx.MockTransport(handler))
        return get_payment_gateway(credentials)

    app.dependency_overrides[get_gateway_factory] = lambda: factory
    product = await seed.product(price="9.90", stock=-1, name="VIP key")
    await seed.order(product.id, order_no="SL-EPAY", amount="9.90", user_id=1)

    resp = await client.post(
        "/api/v1/shop/epay/pay", json={"order_no": "SL-EPAY", "pay_type": "wxpay"}, headers=auth_headers
    )

    data = resp.json()["data"]
    assert resp.status_code == 200
    assert data["pay_url"] == "https://epay.example.com/pay/EP001"
    assert data["provider_ref"] == "EP001"
    assert "notification" not in data
    assert len(requests) == 1
    assert requests[0].url.path == "/mapi.php"
    form = dict(httpx.QueryParams(requests[0].content.decode()))
    assert form["money"] == "9.90"
    assert form["type"] == "wxpay"
    assert form["notify_url"] == "http://testserver/api/v1/shop/epay/notify"
