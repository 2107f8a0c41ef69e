"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, EmailStr, Field, model_serializer, ConfigDict
from shared.codes import BusinessCode
from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal
from core.config import settings
from domain.order.entity import PaymentMethod
from domain.payment.entity import PaymentGateway, PaymentStatus
from domain.user.entity import UserRole


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class CurrentUserDTO(DTOBase):
    """已认证的调用方"""
    id: int
    email: EmailStr
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PaginationParams(DTOBase):
    """分页参数（页码/每页大小），自动派生 skip/limit"""
    page: int = Field(1, ge=1, description="页码，从1开始")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="每页大小",
    )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


# ---- payments -------------------------------------------------------------


class InitializePaymentDTO(DTOBase):
    """支付初始化请求"""
    order_id: int = Field(..., gt=0)
    gateway: Optional[str] = Field(default=None, description="支付网关，默认 paystack")
    callback_url: Optional[str] = Field(default=None, max_length=500)


class VerifyPaymentDTO(DTOBase):
    reference: str = Field(..., min_length=1, max_length=100)


class RefundPaymentDTO(DTOBase):
    amount: Optional[int] = Field(default=None, gt=0, description="退款金额，缺省为全额")
    reason: Optional[str] = Field(default=None, max_length=500)


class PaymentInitializationDTO(DTOBase):
    """支付初始化结果"""
    reference: str
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    order_id: int
    amount: int
    currency: str
    gateway: PaymentGateway
    reused: bool = False


class PaymentResponseDTO(DTOBase):
    id: int
    reference: str
    order_id: int
    user_id: int
    gateway: PaymentGateway
    amount: int
    currency: str
    status: PaymentStatus
    method: Optional[PaymentMethod] = None
    fees: Decimal
    net_amount: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    gateway_reference: Optional[str] = None
    gateway_response: Optional[str] = None
    failure_reason: Optional[str] = None
    authorization_url: Optional[str] = None
    refunded: bool = False
    refunded_amount: Optional[int] = None
    refunded_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    refund_reference: Optional[str] = None
    initiated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentVerificationDTO(DTOBase):
    """支付验证结果；stock_conflicts 为确认时库存不足的商品"""
    payment: PaymentResponseDTO
    order_id: int
    order_number: Optional[str] = None
    order_status: Optional[str] = None
    stock_conflicts: list[int] = Field(default_factory=list)
    already_verified: bool = False


class WebhookAckDTO(DTOBase):
    received: bool = True
    event: Optional[str] = None
    processed: bool = False
    duplicate: bool = False
