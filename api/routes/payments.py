"""
Payments API routes.

Vendor notification endpoints always answer HTTP 200 with the vendor's own
acknowledgement body; everything else uses the JSON envelope. Keep this thin:
decoding, verification and settlement live in the application services.
"""
from __future__ import annotations

import ipaddress
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from api.dependencies import get_current_user_id, get_notification_service, get_payment_service
from application.dtos.payments import Acknowledgement, PayRequest, SimulatedPayRequest
from application.dtos.shop import OrderView
from application.services.notification_service import NotificationService
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.external.payments import normalize_channel


router = APIRouter(prefix="/shop", tags=["Payments"])
logger = get_logger(__name__)


def ip_permitted(remote_ip: Optional[str], allowlist: Iterable[str]) -> bool:
    """Exact IPs or CIDR networks; an empty allowlist permits everyone."""
    entries = [e.strip() for e in allowlist if e and e.strip()]
    if not entries:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in entries:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


def _ack_response(ack: Acknowledgement) -> Response:
    return Response(content=ack.body, media_type=ack.media_type, status_code=200)


async def _receive(channel: str, request: Request, service: NotificationService) -> Response:
    # 白名单只看套接字对端地址，转发头可以伪造
    peer = request.client.host if request.client else None
    if not ip_permitted(peer, payment_settings.webhook.ip_allowlist or []):
        logger.warning("webhook_ip_not_allowed", channel=channel, remote_ip=peer)
        return _ack_response(service.reject(channel, "ip not allowed"))

    body = await request.body()
    ack = await service.handle(
        channel,
        body,
        dict(request.query_params),
        content_type=request.headers.get("content-type"),
        client_ip=getattr(request.state, "client_ip", peer),
    )
    return _ack_response(ack)


@router.post("/wechat-pay/notify", include_in_schema=False)
async def wechat_pay_notify(
    request: Request,
    service: NotificationService = Depends(get_notification_service),
):
    return await _receive("wechat", request, service)


@router.api_route("/epay/notify", methods=["GET", "POST"], include_in_schema=False)
async def epay_notify(
    request: Request,
    service: NotificationService = Depends(get_notification_service),
):
    return await _receive("epay", request, service)


@router.api_route("/xunhupay/notify", methods=["GET", "POST"], include_in_schema=False)
async def xunhupay_notify(
    request: Request,
    service: NotificationService = Depends(get_notification_service),
):
    return await _receive("xunhupay", request, service)


@router.post("/test-pay", summary="Simulate a payment through the test channel")
async def test_pay(
    payload: SimulatedPayRequest,
    user_id: int = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service),
    notifications: NotificationService = Depends(get_notification_service),
):
    ack, order = await payments.simulate_payment(user_id, payload.order_no, notifications)
    return success_response(
        data={
            "accepted": ack.accepted,
            "ack": ack.body,
            "order": OrderView.from_entity(order).model_dump(mode="json"),
        },
        message="Test payment processed" if ack.accepted else "Test payment rejected",
    )


@router.post("/{channel}/pay", summary="Create a vendor payment for an order")
async def create_payment(
    channel: str,
    payload: PayRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service),
):
    intent = await payments.create_payment(
        user_id,
        normalize_channel(channel),
        payload.order_no,
        pay_type=payload.pay_type,
        client_ip=getattr(request.state, "client_ip", None),
    )
    return success_response(
        data=intent.model_dump(mode="json", exclude={"notification"}),
        message="Payment created",
    )
