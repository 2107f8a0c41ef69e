"""
支付领域实体 - 一次网关支付尝试
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from domain.common.exceptions import DomainValidationException
from domain.order.entity import PaymentMethod


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"        # 已初始化，等待网关结果
    COMPLETED = "completed"    # 支付成功
    FAILED = "failed"          # 支付失败或过期
    REFUNDED = "refunded"      # 已退款


class PaymentGateway(str, Enum):
    PAYSTACK = "paystack"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class GatewayCharge:
    """网关返回的交易结果（已从网关格式转换为领域字段）"""

    succeeded: bool
    reference: str
    transaction_id: Optional[str] = None
    gateway_response: Optional[str] = None
    message: Optional[str] = None
    method: Optional[PaymentMethod] = None
    fees: Decimal = Decimal("0")
    paid_at: Optional[datetime] = None
    customer: Dict[str, Any] = field(default_factory=dict)
    authorization: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    risk_action: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Payment:
    """
    支付聚合根

    业务规则：
    1. 金额必须大于0
    2. 每个订单最多一笔支付进入 COMPLETED
    3. 超过有效期的 PENDING 支付视为过期，在下一次初始化时被替换
    4. 只有 COMPLETED 的支付才能退款，且只能退款一次
    """

    id: Optional[int]
    reference: str
    order_id: int
    user_id: int
    gateway: PaymentGateway
    amount: int
    currency: str
    status: PaymentStatus = PaymentStatus.PENDING
    method: Optional[PaymentMethod] = None
    fees: Decimal = field(default_factory=lambda: Decimal("0"))
    net_amount: Optional[Decimal] = None

    transaction_id: Optional[str] = None
    gateway_reference: Optional[str] = None
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    gateway_response: Optional[str] = None
    failure_reason: Optional[str] = None
    callback_url: Optional[str] = None

    customer: Dict[str, Any] = field(default_factory=dict)
    authorization: Dict[str, Any] = field(default_factory=dict)
    gateway_metadata: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    risk_action: Optional[str] = None

    refunded: bool = False
    refunded_amount: Optional[int] = None
    refunded_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    refund_reference: Optional[str] = None

    initiated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(
                f"Payment amount must be greater than 0: {self.amount}",
                field="amount",
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        for name in ("initiated_at", "paid_at", "failed_at", "completed_at", "refunded_at", "created_at", "updated_at"):
            setattr(self, name, _ensure_utc(getattr(self, name)))
        self.customer = self.customer or {}
        self.authorization = self.authorization or {}
        self.gateway_metadata = self.gateway_metadata or {}

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    def is_expired(self, ttl: timedelta, now: Optional[datetime] = None) -> bool:
        """PENDING 支付创建时间早于 now - ttl 即视为过期"""
        if not self.is_pending:
            return False
        created = self.created_at or self.initiated_at
        if created is None:
            return False
        return created <= (now or datetime.now(timezone.utc)) - ttl

    def expire(self) -> None:
        self.mark_failed("Payment expired")

    def mark_completed(self, charge: GatewayCharge) -> None:
        """根据网关成功结果标记完成；fees 为主币单位，net_amount = amount - fees"""
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise DomainValidationException(
                f"Cannot complete a payment in status {self.status.value}",
                field="status",
            )
        now = datetime.now(timezone.utc)
        self.status = PaymentStatus.COMPLETED
        self.transaction_id = charge.transaction_id
        self.gateway_reference = charge.reference
        self.gateway_response = charge.gateway_response
        self.method = charge.method
        self.fees = charge.fees
        self.net_amount = Decimal(self.amount) - charge.fees
        self.paid_at = _ensure_utc(charge.paid_at) or now
        self.completed_at = now
        self.customer = dict(charge.customer)
        self.authorization = dict(charge.authorization)
        self.gateway_metadata = dict(charge.raw)
        self.ip_address = charge.ip_address
        self.risk_action = charge.risk_action
        self.failure_reason = None
        self.updated_at = now

    def mark_failed(self, reason: Optional[str] = None, gateway_response: Optional[str] = None) -> None:
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise DomainValidationException(
                f"Cannot fail a payment in status {self.status.value}",
                field="status",
            )
        now = datetime.now(timezone.utc)
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        if gateway_response is not None:
            self.gateway_response = gateway_response
        self.failed_at = now
        self.updated_at = now

    def mark_refunded(
        self,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> None:
        """记录退款结果；amount 缺省为全额"""
        now = datetime.now(timezone.utc)
        self.status = PaymentStatus.REFUNDED
        self.refunded = True
        self.refunded_amount = amount or self.amount
        self.refunded_at = now
        self.refund_reason = reason
        self.refund_reference = reference
        self.updated_at = now
