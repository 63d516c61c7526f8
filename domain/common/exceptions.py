"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_no: Optional[str] = None):
        details = {"order_no": order_no} if order_no else None
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details,
        )


class OrderStateException(BusinessException):
    """订单状态不允许当前操作"""

    def __init__(self, order_no: str, status: str, action: str):
        super().__init__(
            code=BusinessCode.ORDER_STATE_INVALID,
            message=f"Order {order_no} in status '{status}' cannot be {action}",
            error_type="OrderStateInvalid",
            details={"order_no": order_no, "status": status, "action": action},
            field="status",
        )


class OrderAccessDeniedException(BusinessException):
    def __init__(self, order_no: str):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="Order belongs to another user",
            error_type="OrderAccessDenied",
            details={"order_no": order_no},
        )


class TooManyPendingOrdersException(BusinessException):
    def __init__(self, limit: int):
        super().__init__(
            code=BusinessCode.TOO_MANY_PENDING_ORDERS,
            message=f"Too many unpaid orders (limit {limit}), pay or cancel existing orders first",
            error_type="TooManyPendingOrders",
            details={"limit": limit},
        )


class ProductNotFoundException(BusinessException):
    def __init__(self, product_id: Optional[int] = None):
        details = {"product_id": product_id} if product_id is not None else None
        super().__init__(
            code=BusinessCode.PRODUCT_NOT_FOUND,
            message="Product not found",
            error_type="ProductNotFound",
            details=details,
            field="product_id",
        )


class ProductUnavailableException(BusinessException):
    def __init__(self, product_id: int):
        super().__init__(
            code=BusinessCode.PRODUCT_UNAVAILABLE,
            message="Product is not on sale",
            error_type="ProductUnavailable",
            details={"product_id": product_id},
            field="product_id",
        )


class ProductSoldOutException(BusinessException):
    def __init__(self, product_id: int):
        super().__init__(
            code=BusinessCode.PRODUCT_SOLD_OUT,
            message="Product is sold out",
            error_type="ProductSoldOut",
            details={"product_id": product_id},
            field="product_id",
        )


class PaymentChannelUnavailableException(BusinessException):
    def __init__(self, channel: str):
        super().__init__(
            code=BusinessCode.PAYMENT_CHANNEL_UNAVAILABLE,
            message=f"Payment channel '{channel}' is not enabled or not configured",
            error_type="PaymentChannelUnavailable",
            details={"channel": channel},
        )
