"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentGateway port and DTOs.
Gateway implementations are provided by infrastructure and injected from the
composition root (API), keeping dependencies one-way.
"""
from __future__ import annotations

import hashlib
import ipaddress
from datetime import timedelta
from typing import Any, Callable, List, Optional, Tuple

from application.dto import (
    CurrentUserDTO,
    InitializePaymentDTO,
    PaymentInitializationDTO,
    PaymentResponseDTO,
    PaymentVerificationDTO,
    RefundPaymentDTO,
    WebhookAckDTO,
)
from application.dtos.payments import InitializeTransaction, RefundRequest, VerifiedTransaction
from application.ports.payment_gateway import PaymentGateway as GatewayPort
from application.services.notification_service import OrderNotificationPublisher
from application.utils.errors import translate_errors
from core.config import settings
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import ForbiddenException, OrderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.order.service import OrderDomainService
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.service import (
    PaymentDomainService,
    PaymentNotFoundException,
    generate_reference,
    resolve_gateway,
)


logger = get_logger(__name__)

CHARGE_EVENTS = ("charge.success", "charge.failed")


def build_payment_metadata(order: Order) -> dict[str, Any]:
    """网关交易附带的订单元数据"""
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "item_count": order.item_count,
        "seller_count": order.seller_count,
        "buyer_id": order.buyer_id,
        "seller_ids": list(order.seller_ids),
        "multi_product": order.item_count > 1,
        "multi_seller": order.seller_count > 1,
        "subtotal": order.subtotal,
        "shipping_cost": order.total_shipping_cost,
        "service_fee": order.total_service_fee,
        "taxes": order.total_taxes,
    }


def _ip_allowed(client_ip: Optional[str], allowlist: Optional[list[str]]) -> bool:
    if not allowlist:
        return True
    if not client_ip:
        return False
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


class PaymentApplicationService:
    """
    支付应用服务

    - initialize: 复用有效期内的待支付记录，否则向网关发起新交易
    - verify: 已完成的支付直接返回（不产生写入），否则向网关核验并确认订单
    - webhook: 先验签，再按事件类型处理，仅作用于 PENDING 支付
    - refund: 仅管理员
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway_resolver: Callable[[str], GatewayPort],
        *,
        notifier=None,
        cache=None,
        pending_ttl: Optional[timedelta] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway_resolver = gateway_resolver
        self._publisher = OrderNotificationPublisher(uow_factory, notifier)
        self._cache = cache
        self._pending_ttl = pending_ttl or timedelta(minutes=settings.marketplace.pending_payment_ttl_minutes)

    def _gateway(self, name: str) -> GatewayPort:
        return self._gateway_resolver(name)

    # ---- initialize -------------------------------------------------------

    async def initialize_payment(
        self,
        dto: InitializePaymentDTO,
        user: CurrentUserDTO,
    ) -> PaymentInitializationDTO:
        gateway = resolve_gateway(dto.gateway or payment_settings.default_provider)
        callback_url = dto.callback_url or settings.payment_callback_url

        with translate_errors("initialize payment"):
            async with self._uow_factory() as uow:
                order = await uow.order_repository.get_by_id(dto.order_id)
                if order is None:
                    raise OrderNotFoundException(str(dto.order_id))
                PaymentDomainService.ensure_payable(order, user.id)

                domain_service = PaymentDomainService(uow.payment_repository, pending_ttl=self._pending_ttl)
                existing = await domain_service.find_reusable_payment(order)
                if existing is not None:
                    logger.info("payment_reused", order_id=order.id, reference=existing.reference)
                    return self._to_initialization_dto(existing, reused=True)

                reference = generate_reference()
                client = self._gateway(gateway.value)
                initialized = await client.initialize_transaction(InitializeTransaction(
                    reference=reference,
                    email=order.shipping_address.email or user.email,
                    amount=order.total_amount,
                    currency=order.currency,
                    callback_url=callback_url,
                    metadata=build_payment_metadata(order),
                ))
                payment = await domain_service.create_payment(
                    order,
                    user_id=user.id,
                    reference=initialized.reference,
                    gateway=gateway,
                    authorization_url=initialized.authorization_url,
                    access_code=initialized.access_code,
                    callback_url=callback_url,
                )
                domain_service.clear_events()

        logger.info("payment_initialized", order_id=payment.order_id, reference=payment.reference, amount=payment.amount)
        return self._to_initialization_dto(payment)

    # ---- verify -----------------------------------------------------------

    async def verify_payment(self, reference: str) -> Optional[PaymentVerificationDTO]:
        with translate_errors("verify payment"):
            async with self._uow_factory(readonly=True) as uow:
                payment = await PaymentDomainService(uow.payment_repository).get_by_reference(reference)
                if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
                    order = await uow.order_repository.get_by_id(payment.order_id)
                    logger.info("payment_already_verified", reference=reference)
                    return self._to_verification_dto(payment, order, already_verified=True)

            verified = await self._gateway(payment.gateway.value).verify_transaction(reference)
            return await self._apply_verified(reference, verified)

    async def _apply_verified(
        self,
        reference: str,
        verified: VerifiedTransaction,
        *,
        only_pending: bool = False,
        missing_ok: bool = False,
    ) -> Optional[PaymentVerificationDTO]:
        """把网关结果写入支付记录；成功时在同一事务内确认订单并扣减库存"""
        events: List = []
        async with self._uow_factory() as uow:
            payment_service = PaymentDomainService(uow.payment_repository, pending_ttl=self._pending_ttl)
            payment = await uow.payment_repository.get_by_reference(reference)
            if payment is None:
                if missing_ok:
                    return None
                raise PaymentNotFoundException(reference, by_reference=True)

            if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED) or (
                only_pending and not payment.is_pending
            ):
                order = await uow.order_repository.get_by_id(payment.order_id)
                return self._to_verification_dto(payment, order, already_verified=True)

            payment = await payment_service.apply_charge(payment, verified.to_charge())
            conflicts: List[int] = []
            if payment.is_completed:
                order_service = OrderDomainService(
                    uow.order_repository,
                    uow.product_repository,
                    uow.user_repository,
                    currency=settings.marketplace.currency,
                )
                confirmation = await order_service.confirm_payment(
                    payment.order_id,
                    reference=payment.reference,
                    method=payment.method,
                    gateway=payment.gateway.value,
                )
                order = confirmation.order
                conflicts = confirmation.stock_conflicts
                events.extend(order_service.clear_events())
            else:
                order = await uow.order_repository.get_by_id(payment.order_id)
            payment_service.clear_events()

        if payment.is_completed and order.is_closed:
            logger.warning("payment_for_closed_order", reference=reference, order_id=order.id, status=order.status.value)
        if conflicts:
            logger.warning("payment_stock_conflicts", reference=reference, order_id=payment.order_id, products=conflicts)
        logger.info("payment_verified", reference=reference, status=payment.status.value)
        await self._publisher.publish(events)
        return self._to_verification_dto(payment, order, stock_conflicts=conflicts)

    # ---- webhook ----------------------------------------------------------

    async def handle_webhook(
        self,
        provider: str,
        headers: dict[str, Any],
        body: bytes,
        client_ip: Optional[str] = None,
    ) -> WebhookAckDTO:
        gateway = resolve_gateway(provider)
        if not _ip_allowed(client_ip, payment_settings.webhook.ip_allowlist):
            logger.warning("payment_webhook_ip_rejected", provider=gateway.value, client_ip=client_ip)
            raise ForbiddenException("Webhook source is not allowed", error_type="WebhookSourceRejected")

        client = self._gateway(gateway.value)
        # 验签失败直接抛出，不读取任何支付或订单状态
        event = client.parse_webhook(headers, body)
        logger.info("payment_webhook_parsed", provider=event.provider, event_type=event.type, event_id=event.id)

        dedupe_key = None
        if self._cache is not None:
            digest = hashlib.sha256(body).hexdigest()[:32]
            dedupe_key = f"webhook:{event.provider}:{event.type}:{event.id}:{digest}"
            first = await self._cache.set_if_absent(dedupe_key, 1, payment_settings.webhook.dedupe_ttl_seconds)
            if not first:
                logger.info("payment_webhook_duplicate", event_id=event.id)
                return WebhookAckDTO(event=event.type, duplicate=True)

        if event.type not in CHARGE_EVENTS:
            logger.info("payment_webhook_ignored", event_type=event.type)
            return WebhookAckDTO(event=event.type)

        reference = event.reference
        if not reference:
            logger.warning("payment_webhook_missing_reference", event_id=event.id)
            return WebhookAckDTO(event=event.type)

        try:
            with translate_errors("process webhook"):
                result = await self._apply_verified(
                    reference,
                    client.to_verified(event),
                    only_pending=True,
                    missing_ok=True,
                )
        except Exception:
            # 处理失败时释放去重键，允许网关重试
            if dedupe_key is not None:
                await self._cache.delete(dedupe_key)
            raise

        if result is None:
            logger.warning("payment_webhook_unknown_reference", reference=reference)
            return WebhookAckDTO(event=event.type)
        return WebhookAckDTO(event=event.type, processed=not result.already_verified)

    # ---- refunds & queries ------------------------------------------------

    async def refund_payment(self, payment_id: int, dto: RefundPaymentDTO, user: CurrentUserDTO) -> PaymentResponseDTO:
        if not user.is_admin:
            raise ForbiddenException("Only administrators can refund payments", error_type="PaymentPermissionDenied")

        with translate_errors("refund payment"):
            async with self._uow_factory() as uow:
                domain_service = PaymentDomainService(uow.payment_repository)
                payment = await domain_service.get_by_id(payment_id)
                domain_service.ensure_refundable(payment)

                result = await self._gateway(payment.gateway.value).refund(RefundRequest(
                    transaction_id=str(payment.transaction_id),
                    amount=dto.amount,
                    currency=payment.currency,
                    reason=dto.reason,
                ))
                payment = await domain_service.record_refund(
                    payment,
                    amount=dto.amount,
                    reason=dto.reason,
                    reference=result.refund_id,
                )
                domain_service.clear_events()

        logger.info("payment_refunded", payment_id=payment.id, amount=payment.refunded_amount, refund_id=payment.refund_reference)
        return PaymentResponseDTO.model_validate(payment)

    async def get_payment(self, payment_id: int, user: CurrentUserDTO) -> PaymentResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            payment = await PaymentDomainService(uow.payment_repository).get_by_id(payment_id)
        if payment.user_id != user.id and not user.is_admin:
            raise ForbiddenException("You do not have permission to view this payment", error_type="PaymentPermissionDenied")
        return PaymentResponseDTO.model_validate(payment)

    async def list_history(self, user: CurrentUserDTO, skip: int = 0, limit: int = 20) -> Tuple[List[PaymentResponseDTO], int]:
        async with self._uow_factory(readonly=True) as uow:
            payments, total = await uow.payment_repository.list_by_user(user.id, skip, limit)
        return [PaymentResponseDTO.model_validate(p) for p in payments], int(total)

    # ---- mapping ----------------------------------------------------------

    @staticmethod
    def _to_initialization_dto(payment: Payment, *, reused: bool = False) -> PaymentInitializationDTO:
        return PaymentInitializationDTO(
            reference=payment.reference,
            authorization_url=payment.authorization_url,
            access_code=payment.access_code,
            order_id=payment.order_id,
            amount=payment.amount,
            currency=payment.currency,
            gateway=payment.gateway,
            reused=reused,
        )

    @staticmethod
    def _to_verification_dto(
        payment: Payment,
        order: Optional[Order],
        *,
        stock_conflicts: Optional[List[int]] = None,
        already_verified: bool = False,
    ) -> PaymentVerificationDTO:
        return PaymentVerificationDTO(
            payment=PaymentResponseDTO.model_validate(payment),
            order_id=payment.order_id,
            order_number=order.order_number if order else None,
            order_status=order.status.value if order else None,
            stock_conflicts=list(stock_conflicts or []),
            already_verified=already_verified,
        )
