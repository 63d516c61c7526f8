"""
API依赖项 - 认证与服务装配（组合根）
"""
from typing import Callable, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.dtos.payments import ChannelCredentials
from application.ports.payment_gateway import PaymentGateway
from application.services.channel_config_service import ChannelConfigService
from application.services.notification_service import NotificationService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementRunner
from core.config import settings
from core.exceptions import TokenExpiredException, TokenInvalidException, UnauthorizedException
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    request: Request,
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """从 Bearer 头或登录 Cookie 中提取 token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials

    cookie_token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if cookie_token:
        return cookie_token

    raise UnauthorizedException("未提供认证凭据")


async def get_current_user_id(token: str = Depends(get_token)) -> int:
    """解析 JWT，返回 sub 中的用户ID；签发由账户服务负责"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.InvalidTokenError:
        raise TokenInvalidException()

    sub = payload.get("sub")
    try:
        return int(sub)
    except (TypeError, ValueError):
        raise TokenInvalidException("Token subject is not a user id")


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


def get_gateway_factory() -> Callable[[ChannelCredentials], PaymentGateway]:
    return get_payment_gateway


async def get_channel_config_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> ChannelConfigService:
    return ChannelConfigService(
        uow_factory,
        payment_settings,
        site_url=settings.SITE_URL,
        test_secret_fallback=settings.SECRET_KEY,
    )


async def get_settlement_runner(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> SettlementRunner:
    return SettlementRunner(
        uow_factory,
        timeout_seconds=payment_settings.webhook.settle_timeout_seconds,
    )


async def get_notification_service(
    channels: ChannelConfigService = Depends(get_channel_config_service),
    runner: SettlementRunner = Depends(get_settlement_runner),
    gateway_factory: Callable[[ChannelCredentials], PaymentGateway] = Depends(get_gateway_factory),
) -> NotificationService:
    return NotificationService(channels, runner, gateway_factory)


async def get_order_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> OrderService:
    return OrderService(uow_factory, max_pending_orders=settings.MAX_PENDING_ORDERS)


async def get_payment_service(
    orders: OrderService = Depends(get_order_service),
    channels: ChannelConfigService = Depends(get_channel_config_service),
    gateway_factory: Callable[[ChannelCredentials], PaymentGateway] = Depends(get_gateway_factory),
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> PaymentService:
    return PaymentService(orders, channels, gateway_factory, uow_factory)
