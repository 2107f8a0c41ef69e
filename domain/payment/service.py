"""
支付领域服务 - 处理支付初始化、结果落库与退款的业务规则
"""
import random
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .entity import GatewayCharge, Payment, PaymentGateway, PaymentStatus
from .repository import PaymentRepository
from .events import PaymentFailed, PaymentInitialized, PaymentRefunded, PaymentSucceeded
from domain.common.exceptions import (
    BusinessException,
    ConflictException,
    DomainValidationException,
    ForbiddenException,
    NotFoundException,
    OrderAlreadyPaidException,
)
from domain.order.entity import Order
from shared.codes import BusinessCode


class PaymentNotFoundException(NotFoundException):
    """支付记录不存在"""
    def __init__(self, identifier: str, *, by_reference: bool = False):
        super().__init__(
            "Payment record not found" if by_reference else "Payment not found",
            code=BusinessCode.PAYMENT_NOT_FOUND,
            error_type="PaymentNotFound",
            details={"payment": identifier},
            message_key="payment.record_not_found" if by_reference else "payment.not_found",
        )


class PaymentNotRefundableException(DomainValidationException):
    """支付不可退款"""
    def __init__(self, status: PaymentStatus):
        super().__init__(
            "Only completed payments can be refunded",
            code=BusinessCode.PAYMENT_NOT_REFUNDABLE,
            error_type="PaymentNotRefundable",
            field="status",
            details={"status": status.value},
            message_key="payment.refund.not_completed",
        )


class PaymentAlreadyRefundedException(ConflictException):
    """支付已退款"""
    def __init__(self, reference: str):
        super().__init__(
            "Payment has already been refunded",
            code=BusinessCode.PAYMENT_ALREADY_REFUNDED,
            error_type="PaymentAlreadyRefunded",
            details={"reference": reference},
            message_key="payment.refund.already_refunded",
        )


class UnsupportedGatewayException(DomainValidationException):
    def __init__(self, gateway: str):
        super().__init__(
            f"Unsupported payment gateway: {gateway}",
            code=BusinessCode.PAYMENT_GATEWAY_UNSUPPORTED,
            error_type="UnsupportedGateway",
            field="gateway",
            details={"gateway": gateway},
        )


def generate_reference(prefix: str = "PAY", now_ms: Optional[int] = None, rand: Optional[int] = None) -> str:
    """PAY_{毫秒时间戳}_{0..999999}"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if rand is None:
        rand = random.randint(0, 999999)
    return f"{prefix}_{now_ms}_{rand}"


def resolve_gateway(value: Optional[str]) -> PaymentGateway:
    if value is None:
        return PaymentGateway.PAYSTACK
    try:
        return PaymentGateway(str(value).lower())
    except ValueError:
        raise UnsupportedGatewayException(str(value)) from None


class PaymentDomainService:
    """
    支付领域服务 - 编排支付相关业务规则

    职责：
    1. 初始化前的校验（付款人、重复支付、过期支付替换）
    2. 网关结果落库（成功/失败）
    3. 退款业务规则
    4. 产生领域事件
    """

    def __init__(self, payment_repository: PaymentRepository, *, pending_ttl: timedelta = timedelta(minutes=30)):
        self.payment_repository = payment_repository
        self.pending_ttl = pending_ttl
        self.events: List = []

    @staticmethod
    def ensure_payable(order: Order, user_id: int) -> None:
        """业务规则：只有买家可以支付，已支付或已关闭的订单不能再次支付"""
        if not order.is_buyer(user_id):
            raise ForbiddenException(
                "You can only pay for your own orders",
                error_type="PaymentPermissionDenied",
            )
        if order.is_paid:
            raise OrderAlreadyPaidException(order.order_number)
        if order.is_closed:
            raise DomainValidationException(
                f"Cannot pay for a {order.status.value} order",
                error_type="OrderNotPayable",
                field="order_id",
            )

    async def find_reusable_payment(self, order: Order, now: Optional[datetime] = None) -> Optional[Payment]:
        """
        返回仍在有效期内的 PENDING 支付；过期的支付标记为失败并返回 None
        """
        existing = await self.payment_repository.get_latest_for_order(order.id, status=PaymentStatus.PENDING)
        if existing is None:
            return None
        if not existing.is_expired(self.pending_ttl, now):
            return existing

        existing.expire()
        await self.payment_repository.update(existing)
        self.events.append(PaymentFailed(
            order_id=existing.order_id,
            reference=existing.reference,
            gateway=existing.gateway.value,
            reason=existing.failure_reason,
        ))
        return None

    async def create_payment(
        self,
        order: Order,
        *,
        user_id: int,
        reference: str,
        gateway: PaymentGateway,
        authorization_url: Optional[str],
        access_code: Optional[str],
        callback_url: Optional[str],
        gateway_metadata: Optional[dict] = None,
    ) -> Payment:
        now = datetime.now(timezone.utc)
        payment = Payment(
            id=None,
            reference=reference,
            order_id=order.id,
            user_id=user_id,
            gateway=gateway,
            amount=order.total_amount,
            currency=order.currency,
            status=PaymentStatus.PENDING,
            authorization_url=authorization_url,
            access_code=access_code,
            callback_url=callback_url,
            gateway_metadata=gateway_metadata or {},
            initiated_at=now,
            created_at=now,
            updated_at=now,
        )
        created = await self.payment_repository.create(payment)
        self.events.append(PaymentInitialized(
            order_id=created.order_id,
            reference=created.reference,
            gateway=created.gateway.value,
            amount=created.amount,
        ))
        return created

    async def get_by_reference(self, reference: str) -> Payment:
        payment = await self.payment_repository.get_by_reference(reference)
        if payment is None:
            raise PaymentNotFoundException(reference, by_reference=True)
        return payment

    async def get_by_id(self, payment_id: int) -> Payment:
        payment = await self.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(str(payment_id))
        return payment

    async def apply_charge(self, payment: Payment, charge: GatewayCharge) -> Payment:
        """把网关结果写入支付记录"""
        if charge.succeeded:
            payment.mark_completed(charge)
            event = PaymentSucceeded(
                order_id=payment.order_id,
                reference=payment.reference,
                gateway=payment.gateway.value,
                transaction_id=payment.transaction_id,
            )
        else:
            payment.mark_failed(charge.message, charge.gateway_response)
            event = PaymentFailed(
                order_id=payment.order_id,
                reference=payment.reference,
                gateway=payment.gateway.value,
                reason=charge.message,
            )
        updated = await self.payment_repository.update(payment)
        self.events.append(event)
        return updated

    @staticmethod
    def ensure_refundable(payment: Payment) -> None:
        """业务规则：已退款 -> 冲突；非 COMPLETED -> 校验失败"""
        if payment.refunded or payment.status == PaymentStatus.REFUNDED:
            raise PaymentAlreadyRefundedException(payment.reference)
        if payment.status != PaymentStatus.COMPLETED:
            raise PaymentNotRefundableException(payment.status)
        if not payment.transaction_id:
            raise BusinessException(
                code=BusinessCode.PAYMENT_NOT_REFUNDABLE,
                message="Payment has no gateway transaction to refund",
                error_type="PaymentNotRefundable",
            )

    async def record_refund(
        self,
        payment: Payment,
        *,
        amount: Optional[int],
        reason: Optional[str],
        reference: Optional[str],
    ) -> Payment:
        payment.mark_refunded(amount, reason, reference)
        updated = await self.payment_repository.update(payment)
        self.events.append(PaymentRefunded(
            order_id=updated.order_id,
            reference=updated.reference,
            gateway=updated.gateway.value,
            amount=updated.refunded_amount or 0,
        ))
        return updated

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
