"""
订单应用服务 - 编排订单领域服务、事务边界与通知
"""
from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from application.dto import CurrentUserDTO, InitializePaymentDTO
from application.dtos.orders import (
    CalculateOrderDTO,
    CancelOrderDTO,
    CreateOrderDTO,
    CreateOrderResponseDTO,
    OrderCalculationDTO,
    OrderQueryParams,
    OrderResponseDTO,
    SellerPayoutDTO,
    SellerPayoutResponseDTO,
    UpdateOrderStatusDTO,
)
from application.services.notification_service import OrderNotificationPublisher
from application.utils.errors import translate_errors
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import ForbiddenException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.aggregator import CartLine
from domain.order.entity import Order, ShippingAddress
from domain.order.repository import OrderQuery, OrderScope, OrderSort
from domain.order.service import OrderDomainService

logger = get_logger(__name__)


def _lines(items) -> List[CartLine]:
    return [CartLine(product_id=i.product_id, quantity=i.quantity, selected_size=i.selected_size) for i in items]


class OrderApplicationService:
    """订单应用服务 - 处理应用层逻辑"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        notifier=None,
        payment_service=None,
    ):
        self._uow_factory = uow_factory
        self._publisher = OrderNotificationPublisher(uow_factory, notifier)
        self._payment_service = payment_service

    def _domain_service(self, uow: AbstractUnitOfWork) -> OrderDomainService:
        return OrderDomainService(
            uow.order_repository,
            uow.product_repository,
            uow.user_repository,
            currency=settings.marketplace.currency,
        )

    # ---- checkout ---------------------------------------------------------

    async def calculate(self, dto: CalculateOrderDTO, user: CurrentUserDTO) -> OrderCalculationDTO:
        """计算购物车金额（只读）"""
        with translate_errors("calculate order"):
            async with self._uow_factory(readonly=True) as uow:
                calculation = await self._domain_service(uow).calculate(_lines(dto.items), user.id)
        return OrderCalculationDTO.model_validate(calculation)

    async def create_order(
        self,
        dto: CreateOrderDTO,
        user: CurrentUserDTO,
        *,
        origin: Optional[str] = None,
    ) -> CreateOrderResponseDTO:
        """
        下单；提供 payment_method 时随后初始化支付

        支付初始化失败不会回滚订单，只是响应中不含 payment。
        """
        with translate_errors("create order"):
            async with self._uow_factory() as uow:
                domain_service = self._domain_service(uow)
                order = await domain_service.create_order(
                    _lines(dto.items),
                    user.id,
                    ShippingAddress(**dto.shipping_address.model_dump()),
                    shipping_method=dto.shipping_method,
                    buyer_notes=dto.buyer_notes,
                )
                events = domain_service.clear_events()

        logger.info("order_placed", order_id=order.id, order_number=order.order_number, total=order.total_amount)
        await self._publisher.publish(events)

        payment = None
        if dto.payment_method and self._payment_service is not None:
            callback_base = (origin or settings.FRONTEND_URL).rstrip("/")
            try:
                payment = await self._payment_service.initialize_payment(
                    InitializePaymentDTO(
                        order_id=order.id,
                        gateway=dto.payment_method,
                        callback_url=f"{callback_base}/checkout?ordno={order.order_number}",
                    ),
                    user,
                )
            except Exception:
                logger.warning(
                    "order_payment_initialization_failed",
                    order_id=order.id,
                    gateway=dto.payment_method,
                    exc_info=True,
                )

        return CreateOrderResponseDTO(order=self._to_response_dto(order), payment=payment)

    # ---- queries ----------------------------------------------------------

    async def get_order(self, order_id: int, user: CurrentUserDTO) -> OrderResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await self._domain_service(uow).get_order(order_id)
        self._ensure_can_view(order, user)
        return self._to_response_dto(order)

    async def get_order_by_number(self, order_number: str, user: CurrentUserDTO) -> OrderResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await self._domain_service(uow).get_order_by_number(order_number)
        self._ensure_can_view(order, user)
        return self._to_response_dto(order)

    async def list_orders(self, params: OrderQueryParams, user: CurrentUserDTO) -> Tuple[List[OrderResponseDTO], int]:
        """管理员查看全部，其他用户查看自己作为买家或卖家的订单"""
        scope = OrderScope.ALL if user.is_admin else OrderScope.PARTICIPANT
        return await self._list(params, scope, user.id)

    async def list_purchases(self, params: OrderQueryParams, user: CurrentUserDTO) -> Tuple[List[OrderResponseDTO], int]:
        return await self._list(params, OrderScope.BUYER, user.id)

    async def list_sales(self, params: OrderQueryParams, user: CurrentUserDTO) -> Tuple[List[OrderResponseDTO], int]:
        return await self._list(params, OrderScope.SELLER, user.id)

    async def list_user_orders(
        self,
        user_id: int,
        params: OrderQueryParams,
        user: CurrentUserDTO,
    ) -> Tuple[List[OrderResponseDTO], int]:
        if not user.is_admin:
            raise ForbiddenException("Only administrators can view other users' orders")
        return await self._list(params, OrderScope.PARTICIPANT, user_id)

    async def _list(self, params: OrderQueryParams, scope: OrderScope, user_id: int):
        query = OrderQuery(
            page=params.page,
            limit=params.limit,
            status=params.status,
            search=params.search.strip() if params.search else None,
            sort_by=OrderSort(params.sort_by),
            scope=scope,
            user_id=user_id,
        )
        with translate_errors("fetch orders"):
            async with self._uow_factory(readonly=True) as uow:
                orders, total = await uow.order_repository.list(query)
        return [self._to_response_dto(o) for o in orders], int(total)

    # ---- mutations --------------------------------------------------------

    async def update_status(self, order_id: int, dto: UpdateOrderStatusDTO, user: CurrentUserDTO) -> OrderResponseDTO:
        with translate_errors("update order status"):
            async with self._uow_factory() as uow:
                domain_service = self._domain_service(uow)
                order = await domain_service.change_status(
                    order_id,
                    dto.status,
                    actor_id=user.id,
                    is_admin=user.is_admin,
                    reason=dto.reason,
                    tracking_number=dto.tracking_number,
                    carrier_name=dto.carrier_name,
                    admin_notes=dto.admin_notes,
                )
                events = domain_service.clear_events()

        logger.info("order_status_updated", order_id=order.id, status=order.status.value, actor_id=user.id)
        await self._publisher.publish(events)
        return self._to_response_dto(order)

    async def cancel_order(self, order_id: int, dto: CancelOrderDTO, user: CurrentUserDTO) -> OrderResponseDTO:
        with translate_errors("cancel order"):
            async with self._uow_factory() as uow:
                domain_service = self._domain_service(uow)
                order = await domain_service.cancel_order(order_id, actor_id=user.id, reason=dto.reason)
                events = domain_service.clear_events()

        logger.info("order_cancelled", order_id=order.id, actor_id=user.id)
        await self._publisher.publish(events)
        return self._to_response_dto(order)

    async def process_payout(self, order_id: int, dto: SellerPayoutDTO, user: CurrentUserDTO) -> SellerPayoutResponseDTO:
        if not user.is_admin:
            raise ForbiddenException("Only administrators can process seller payouts")
        with translate_errors("process seller payout"):
            async with self._uow_factory() as uow:
                domain_service = self._domain_service(uow)
                payout = await domain_service.process_seller_payout(order_id, dto.seller_id, dto.payout_reference)
                domain_service.clear_events()

        logger.info("seller_payout_processed", order_id=order_id, seller_id=dto.seller_id, reference=dto.payout_reference)
        return SellerPayoutResponseDTO.model_validate(payout)

    # ---- helpers ----------------------------------------------------------

    @staticmethod
    def _ensure_can_view(order: Order, user: CurrentUserDTO) -> None:
        if user.is_admin or order.is_participant(user.id):
            return
        raise ForbiddenException("You do not have permission to view this order", error_type="OrderPermissionDenied")

    @staticmethod
    def _to_response_dto(order: Order) -> OrderResponseDTO:
        return OrderResponseDTO.model_validate(order, from_attributes=True)
