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
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)


# ---- generic kinds -------------------------------------------------------


class NotFoundException(BusinessException):
    def __init__(
        self,
        message: str = "Resource not found",
        *,
        code: int = BusinessCode.NOT_FOUND,
        error_type: str = "NotFound",
        details: Optional[dict] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            message_key=message_key,
            format_params=format_params,
        )


class ConflictException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.CONFLICT,
        error_type: str = "Conflict",
        details: Optional[dict] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            message_key=message_key,
            format_params=format_params,
        )


class ForbiddenException(BusinessException):
    def __init__(
        self,
        message: str = "Forbidden",
        *,
        error_type: str = "Forbidden",
        details: Optional[dict] = None,
        message_key: Optional[str] = None,
    ):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type=error_type,
            details=details,
            message_key=message_key,
        )


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.BUSINESS_ERROR,
        error_type: str = "DomainValidationError",
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            field=field,
            message_key=message_key,
            format_params=format_params,
        )


# ---- users ---------------------------------------------------------------


class UserInactiveException(ForbiddenException):
    def __init__(self):
        super().__init__(
            "User account is inactive",
            error_type="UserInactive",
            message_key="user.inactive",
        )


# ---- orders --------------------------------------------------------------


class OrderNotFoundException(NotFoundException):
    def __init__(self, identifier: Optional[str] = None):
        details = {"order": identifier} if identifier is not None else None
        super().__init__(
            "Order not found",
            code=BusinessCode.ORDER_NOT_FOUND,
            error_type="OrderNotFound",
            details=details,
            message_key="order.not_found",
        )


class OrderValidationException(DomainValidationException):
    """Validation-class failure raised by order and payment use cases."""

    def __init__(self, message: str, *, details: Optional[dict] = None, field: Optional[str] = None):
        super().__init__(
            message,
            error_type="OrderValidationError",
            details=details,
            field=field,
        )


class InvalidStatusTransitionException(DomainValidationException):
    def __init__(self, current: str, target: str):
        super().__init__(
            f"Invalid status transition from {current} to {target}",
            code=BusinessCode.ORDER_INVALID_TRANSITION,
            error_type="InvalidStatusTransition",
            field="status",
            details={"current": current, "target": target},
            message_key="order.status.invalid_transition",
            format_params={"current": current, "target": target},
        )


class OrderPermissionDeniedException(ForbiddenException):
    def __init__(self, message: str = "You do not have permission to update this order status"):
        super().__init__(message, error_type="OrderPermissionDenied")


class ItemsUnavailableException(ConflictException):
    def __init__(self, product_ids: list):
        joined = ", ".join(str(pid) for pid in product_ids)
        super().__init__(
            f"Some items are no longer available: {joined}",
            code=BusinessCode.ORDER_ITEMS_UNAVAILABLE,
            error_type="ItemsUnavailable",
            details={"product_ids": list(product_ids)},
            message_key="order.items.unavailable",
            format_params={"product_ids": joined},
        )


class OrderAlreadyPaidException(ConflictException):
    def __init__(self, order_number: str):
        super().__init__(
            "Order has already been paid",
            code=BusinessCode.ORDER_ALREADY_PAID,
            error_type="OrderAlreadyPaid",
            details={"order_number": order_number},
            message_key="order.already_paid",
        )


class DuplicateOrderNumberException(ConflictException):
    def __init__(self, order_number: str):
        super().__init__(
            f"Order number {order_number} already exists",
            code=BusinessCode.ORDER_NUMBER_CONFLICT,
            error_type="DuplicateOrderNumber",
            details={"order_number": order_number},
        )


class SellerPayoutNotFoundException(NotFoundException):
    def __init__(self, seller_id: int):
        super().__init__(
            "Seller not found in this order",
            code=BusinessCode.SELLER_PAYOUT_NOT_FOUND,
            error_type="SellerPayoutNotFound",
            details={"seller_id": seller_id},
            message_key="order.payout.seller_not_found",
        )
