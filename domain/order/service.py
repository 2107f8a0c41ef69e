"""
订单领域服务 - 编排下单、状态流转、支付确认与卖家结算
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from domain.common.exceptions import (
    DomainValidationException,
    DuplicateOrderNumberException,
    ForbiddenException,
    ItemsUnavailableException,
    OrderNotFoundException,
)
from domain.product.repository import ProductRepository
from domain.user.repository import UserRepository
from .aggregator import CartLine, OrderCalculation, build_order, calculate, generate_order_number
from .entity import Order, OrderStatus, PaymentMethod, SellerPayout, ShippingAddress
from .events import OrderCreated, OrderPaymentConfirmed, OrderStatusChanged, SellerPayoutProcessed
from .repository import OrderRepository
from .state_machine import NON_CANCELLABLE, ensure_can_set_status, ensure_transition

ORDER_NUMBER_ATTEMPTS = 3


@dataclass
class PaymentConfirmation:
    """支付确认结果：stock_conflicts 为原子扣减失败的商品ID"""
    order: Order
    stock_conflicts: List[int] = field(default_factory=list)


class OrderDomainService:
    """
    订单领域服务

    职责：
    1. 计算与校验购物车，生成订单
    2. 状态流转（权限 + 状态机 + 库存归还）
    3. 支付确认（幂等的库存扣减）
    4. 卖家结算
    5. 产生领域事件
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        product_repository: ProductRepository,
        user_repository: UserRepository,
        *,
        currency: str = "NGN",
    ):
        self.order_repository = order_repository
        self.product_repository = product_repository
        self.user_repository = user_repository
        self.currency = currency
        self.events: List = []

    async def get_order(self, order_id: int) -> Order:
        order = await self.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(str(order_id))
        return order

    async def get_order_by_number(self, order_number: str) -> Order:
        order = await self.order_repository.get_by_number(order_number)
        if order is None:
            raise OrderNotFoundException(order_number)
        return order

    async def _load_catalog(self, lines: Sequence[CartLine]):
        products = await self.product_repository.get_many({line.product_id for line in lines})
        sellers = await self.user_repository.get_many({p.seller_id for p in products.values()})
        return products, sellers

    async def calculate(self, lines: Sequence[CartLine], buyer_id: int) -> OrderCalculation:
        """计算购物车金额，不修改任何状态"""
        products, sellers = await self._load_catalog(lines)
        return calculate(lines, products, sellers, buyer_id, currency=self.currency)

    async def create_order(
        self,
        lines: Sequence[CartLine],
        buyer_id: int,
        shipping_address: ShippingAddress,
        *,
        shipping_method: Optional[str] = None,
        buyer_notes: Optional[str] = None,
    ) -> Order:
        """
        下单

        业务规则：
        1. 计算结果存在错误 -> 校验失败
        2. 有商品不可售 -> 冲突
        3. 没有可售商品 -> 校验失败
        """
        products, sellers = await self._load_catalog(lines)
        calculation = calculate(lines, products, sellers, buyer_id, currency=self.currency)

        if calculation.errors:
            raise DomainValidationException(
                f"Order validation failed: {', '.join(calculation.errors)}",
                details={"errors": calculation.errors},
            )
        if calculation.unavailable_items:
            raise ItemsUnavailableException(calculation.unavailable_items)
        if not calculation.items:
            raise DomainValidationException("No valid items in order")

        # 订单号唯一性由存储层约束保证，冲突时换号重试
        attempt = 0
        while True:
            attempt += 1
            order = build_order(
                calculation,
                buyer_id=buyer_id,
                order_number=generate_order_number(),
                shipping_address=shipping_address,
                products=products,
                sellers=sellers,
                shipping_method=shipping_method,
                buyer_notes=buyer_notes,
            )
            try:
                created = await self.order_repository.create(order)
                break
            except DuplicateOrderNumberException:
                if attempt >= ORDER_NUMBER_ATTEMPTS:
                    raise

        self.events.append(OrderCreated(
            order_id=created.id,
            order_number=created.order_number,
            buyer_id=created.buyer_id,
            total_amount=created.total_amount,
        ))
        return created

    async def change_status(
        self,
        order_id: int,
        target: OrderStatus,
        *,
        actor_id: int,
        is_admin: bool,
        reason: Optional[str] = None,
        tracking_number: Optional[str] = None,
        carrier_name: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Order:
        """
        变更订单状态

        先校验权限，再校验状态机；取消时把已扣减的库存归还给商品。
        """
        order = await self.get_order(order_id)
        ensure_can_set_status(order, actor_id, is_admin, target)
        ensure_transition(order.status, target)

        previous = order.status
        now = datetime.now(timezone.utc)
        if target == OrderStatus.CANCELLED:
            await self._restore_inventory(order)

        order.apply_status(
            target,
            actor_id=actor_id,
            is_admin=is_admin,
            reason=reason,
            tracking_number=tracking_number,
            carrier_name=carrier_name,
            admin_notes=admin_notes,
            at=now,
        )
        updated = await self.order_repository.update(order)

        self.events.append(OrderStatusChanged(
            order_id=updated.id,
            order_number=updated.order_number,
            buyer_id=updated.buyer_id,
            previous_status=previous.value,
            new_status=target.value,
            reason=reason,
        ))
        return updated

    async def cancel_order(self, order_id: int, *, actor_id: int, reason: str) -> Order:
        """取消订单：仅买卖双方可发起，随后按普通用户身份走状态流转规则"""
        order = await self.get_order(order_id)
        if not order.is_participant(actor_id):
            raise ForbiddenException(
                "You do not have permission to cancel this order",
                error_type="OrderPermissionDenied",
            )
        if order.status in NON_CANCELLABLE:
            raise DomainValidationException(
                "Order cannot be cancelled in current status",
                field="status",
            )
        return await self.change_status(
            order_id,
            OrderStatus.CANCELLED,
            actor_id=actor_id,
            is_admin=False,
            reason=reason,
        )

    async def _restore_inventory(self, order: Order) -> None:
        for item in order.items:
            if not item.inventory_applied:
                continue
            await self.product_repository.restore_stock(item.product_id, item.quantity)
            item.inventory_applied = False

    async def confirm_payment(
        self,
        order_id: int,
        *,
        reference: str,
        method: Optional[PaymentMethod],
        gateway: str,
    ) -> PaymentConfirmation:
        """
        支付确认

        写入支付信息并推进订单状态；每个订单项最多扣减一次库存（inventory_applied 标记），
        扣减采用原子条件更新，失败时记录在订单项与状态历史中而不是抛出异常，
        因为资金已经到账。已取消或已退款的订单只记录到账，不扣减库存。
        """
        order = await self.get_order(order_id)
        order.record_payment(reference=reference, method=method, gateway=gateway)

        conflicts: List[int] = []
        for item in order.items:
            if item.inventory_applied or order.is_closed:
                continue
            applied = await self.product_repository.decrement_stock(item.product_id, item.quantity)
            if applied:
                item.mark_inventory_applied()
            else:
                message = f"Insufficient stock at payment confirmation for product {item.product_id}"
                item.mark_stock_conflict(message)
                order.add_history(f"Stock conflict: {message}")
                conflicts.append(item.product_id)

        updated = await self.order_repository.update(order)
        if not updated.is_closed:
            self.events.append(OrderPaymentConfirmed(
                order_id=updated.id,
                order_number=updated.order_number,
                buyer_id=updated.buyer_id,
                seller_ids=list(updated.seller_ids),
                payment_reference=reference,
                stock_conflicts=conflicts,
            ))
        return PaymentConfirmation(order=updated, stock_conflicts=conflicts)

    async def process_seller_payout(self, order_id: int, seller_id: int, payout_reference: str) -> SellerPayout:
        order = await self.get_order(order_id)
        payout = order.mark_seller_paid(seller_id, payout_reference)
        await self.order_repository.update(order)
        self.events.append(SellerPayoutProcessed(
            order_id=order.id,
            order_number=order.order_number,
            seller_id=seller_id,
            payout_reference=payout_reference,
        ))
        return payout

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
