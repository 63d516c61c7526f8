"""
订单与会员路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user_id, get_order_service
from application.dtos.shop import CreateOrder, MembershipView, OrderView
from application.services.order_service import OrderService
from core.response import success_response
from domain.shop.entity import OrderStatus


router = APIRouter(prefix="/shop", tags=["Orders"])


@router.post("/orders", summary="创建订单")
async def create_order(
    payload: CreateOrder,
    user_id: int = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.create_order(user_id, payload)
    return success_response(data=OrderView.from_entity(order), message="Order created")


@router.get("/orders", summary="我的订单")
async def list_orders(
    status: Optional[OrderStatus] = Query(default=None),
    user_id: int = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_orders(user_id, status)
    return success_response(data=[OrderView.from_entity(o) for o in orders])


@router.get("/orders/{order_no}", summary="查询订单（支付轮询）")
async def get_order(
    order_no: str,
    user_id: int = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_order(user_id, order_no)
    return success_response(data=OrderView.from_entity(order))


@router.post("/orders/{order_no}/cancel", summary="取消订单")
async def cancel_order(
    order_no: str,
    user_id: int = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel_order(user_id, order_no)
    return success_response(data=OrderView.from_entity(order), message="Order cancelled")


@router.get("/membership", summary="当前会员状态")
async def get_membership(
    user_id: int = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    membership = await service.get_membership(user_id)
    return success_response(data=MembershipView.from_entity(membership) if membership else None)
