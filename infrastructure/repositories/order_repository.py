"""
订单仓储实现 - 订单与订单项作为一个聚合读写
"""
from typing import List, Optional, Tuple

from sqlalchemy import exists, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import DuplicateOrderNumberException, OrderNotFoundException
from domain.order.entity import (
    ItemStatus,
    Order,
    OrderItem,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    SellerPayout,
    ShippingAddress,
)
from domain.order.repository import OrderQuery, OrderRepository, OrderScope, OrderSort
from infrastructure.models.order import OrderItemModel, OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)

# 订单项上可回写的字段（快照与定价字段创建后不再变化）
_MUTABLE_ITEM_FIELDS = (
    "seller_paid",
    "seller_payout_reference",
    "seller_paid_at",
    "tracking_number",
    "carrier_name",
    "shipped_at",
    "delivered_at",
    "cancelled_at",
    "cancellation_reason",
    "availability_message",
    "available",
    "inventory_applied",
)

_MUTABLE_ORDER_FIELDS = (
    "paid_at",
    "payment_reference",
    "payment_gateway",
    "shipping_method",
    "tracking_number",
    "carrier_name",
    "estimated_delivery",
    "confirmed_at",
    "processing_at",
    "shipped_at",
    "delivered_at",
    "cancelled_at",
    "cancellation_reason",
    "cancelled_by",
    "admin_notes",
    "buyer_notes",
)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ---- mapping ----

    def _item_to_entity(self, model: OrderItemModel) -> OrderItem:
        return OrderItem(
            id=model.id,
            order_id=model.order_id,
            product_id=model.product_id,
            seller_id=model.seller_id,
            product_title=model.product_title,
            quantity=model.quantity,
            unit_price=model.unit_price,
            total_price=model.total_price,
            shipping_cost=model.shipping_cost,
            item_service_fee=model.item_service_fee,
            item_taxes=model.item_taxes,
            item_total=model.item_total,
            seller_revenue=model.seller_revenue,
            product_image=model.product_image,
            product_brand=model.product_brand,
            product_size=model.product_size,
            product_condition=model.product_condition,
            product_category=model.product_category,
            seller_name=model.seller_name,
            seller_email=model.seller_email,
            seller_phone=model.seller_phone,
            seller_paid=model.seller_paid,
            seller_payout_reference=model.seller_payout_reference,
            seller_paid_at=model.seller_paid_at,
            item_status=ItemStatus(model.item_status),
            tracking_number=model.tracking_number,
            carrier_name=model.carrier_name,
            shipped_at=model.shipped_at,
            delivered_at=model.delivered_at,
            cancelled_at=model.cancelled_at,
            cancellation_reason=model.cancellation_reason,
            available=model.available,
            availability_message=model.availability_message,
            inventory_applied=model.inventory_applied,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _item_to_model(self, item: OrderItem) -> OrderItemModel:
        return OrderItemModel(
            product_id=item.product_id,
            seller_id=item.seller_id,
            product_title=item.product_title,
            product_image=item.product_image,
            product_brand=item.product_brand,
            product_size=item.product_size,
            product_condition=item.product_condition,
            product_category=item.product_category,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            shipping_cost=item.shipping_cost,
            item_service_fee=item.item_service_fee,
            item_taxes=item.item_taxes,
            item_total=item.item_total,
            seller_name=item.seller_name,
            seller_email=item.seller_email,
            seller_phone=item.seller_phone,
            seller_revenue=item.seller_revenue,
            seller_paid=item.seller_paid,
            seller_payout_reference=item.seller_payout_reference,
            seller_paid_at=item.seller_paid_at,
            item_status=item.item_status.value,
            tracking_number=item.tracking_number,
            carrier_name=item.carrier_name,
            available=item.available,
            availability_message=item.availability_message,
            inventory_applied=item.inventory_applied,
        )

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            order_number=model.order_number,
            buyer_id=model.buyer_id,
            shipping_address=ShippingAddress.from_dict(model.shipping_address or {}),
            status=OrderStatus(model.status),
            subtotal=model.subtotal,
            total_shipping_cost=model.total_shipping_cost,
            total_service_fee=model.total_service_fee,
            total_taxes=model.total_taxes,
            coupon_discount=model.coupon_discount,
            total_amount=model.total_amount,
            currency=model.currency,
            item_count=model.item_count,
            seller_count=model.seller_count,
            seller_ids=[int(s) for s in (model.seller_ids or [])],
            seller_payouts=[SellerPayout.from_dict(p) for p in (model.seller_payouts or [])],
            payment_status=OrderPaymentStatus(model.payment_status),
            payment_method=PaymentMethod(model.payment_method) if model.payment_method else None,
            payment_reference=model.payment_reference,
            payment_gateway=model.payment_gateway,
            paid_at=model.paid_at,
            shipping_method=model.shipping_method,
            tracking_number=model.tracking_number,
            carrier_name=model.carrier_name,
            estimated_delivery=model.estimated_delivery,
            confirmed_at=model.confirmed_at,
            processing_at=model.processing_at,
            shipped_at=model.shipped_at,
            delivered_at=model.delivered_at,
            cancelled_at=model.cancelled_at,
            cancellation_reason=model.cancellation_reason,
            cancelled_by=model.cancelled_by,
            admin_notes=model.admin_notes,
            buyer_notes=model.buyer_notes,
            status_history=list(model.status_history or []),
            items=[self._item_to_entity(i) for i in model.items],
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _apply_to_model(self, order: Order, model: OrderModel) -> None:
        """把实体上的可变状态写回 ORM 对象"""
        model.status = order.status.value
        model.payment_status = order.payment_status.value
        model.payment_method = order.payment_method.value if order.payment_method else None
        model.seller_ids = list(order.seller_ids)
        # JSON 列需整体替换才能被检测为脏数据
        model.seller_payouts = [p.to_dict() for p in order.seller_payouts]
        model.status_history = list(order.status_history)
        model.shipping_address = order.shipping_address.to_dict()
        for name in _MUTABLE_ORDER_FIELDS:
            setattr(model, name, getattr(order, name))

        by_id = {m.id: m for m in model.items}
        for item in order.items:
            item_model = by_id.get(item.id)
            if item_model is None:
                continue
            item_model.item_status = item.item_status.value
            for name in _MUTABLE_ITEM_FIELDS:
                setattr(item_model, name, getattr(item, name))

    def _to_model(self, order: Order) -> OrderModel:
        return OrderModel(
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            status=order.status.value,
            subtotal=order.subtotal,
            total_shipping_cost=order.total_shipping_cost,
            total_service_fee=order.total_service_fee,
            total_taxes=order.total_taxes,
            coupon_discount=order.coupon_discount,
            total_amount=order.total_amount,
            currency=order.currency,
            item_count=order.item_count,
            seller_count=order.seller_count,
            seller_ids=list(order.seller_ids),
            seller_payouts=[p.to_dict() for p in order.seller_payouts],
            payment_status=order.payment_status.value,
            shipping_address=order.shipping_address.to_dict(),
            shipping_method=order.shipping_method,
            buyer_notes=order.buyer_notes,
            status_history=list(order.status_history),
            items=[self._item_to_model(i) for i in order.items],
        )

    # ---- persistence ----

    async def _load(self, order_id: int) -> Optional[OrderModel]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order_id))
        return result.scalar_one_or_none()

    async def create(self, order: Order) -> Order:
        """创建订单；订单号唯一约束冲突时交由上层重试"""
        db_order = self._to_model(order)
        try:
            async with self.session.begin_nested():
                self.session.add(db_order)
                await self.session.flush()
        except IntegrityError:
            logger.warning("order_number_conflict", order_number=order.order_number)
            raise DuplicateOrderNumberException(order.order_number) from None
        await self.session.refresh(db_order, attribute_names=["items"])
        logger.info("order_created", order_id=db_order.id, order_number=db_order.order_number)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        db_order = await self._load(order_id)
        return self._to_entity(db_order) if db_order else None

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.order_number == order_number)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        db_order = await self._load(order.id)
        if db_order is None:
            raise OrderNotFoundException(order.id)
        self._apply_to_model(order, db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        return self._to_entity(db_order)

    def _seller_clause(self, user_id: int):
        return exists().where(
            OrderItemModel.order_id == OrderModel.id,
            OrderItemModel.seller_id == user_id,
        )

    async def list(self, query: OrderQuery) -> Tuple[List[Order], int]:
        conditions = []
        if query.scope == OrderScope.BUYER:
            conditions.append(OrderModel.buyer_id == query.user_id)
        elif query.scope == OrderScope.SELLER:
            conditions.append(self._seller_clause(query.user_id))
        elif query.scope == OrderScope.PARTICIPANT:
            conditions.append(
                or_(OrderModel.buyer_id == query.user_id, self._seller_clause(query.user_id))
            )

        if query.status is not None:
            conditions.append(OrderModel.status == query.status.value)

        if query.search:
            pattern = f"%{query.search}%"
            conditions.append(
                or_(
                    OrderModel.order_number.ilike(pattern),
                    exists().where(
                        OrderItemModel.order_id == OrderModel.id,
                        or_(
                            OrderItemModel.product_title.ilike(pattern),
                            OrderItemModel.product_brand.ilike(pattern),
                        ),
                    ),
                )
            )

        order_by = {
            OrderSort.NEWEST: (OrderModel.created_at.desc(), OrderModel.id.desc()),
            OrderSort.OLDEST: (OrderModel.created_at.asc(), OrderModel.id.asc()),
            OrderSort.AMOUNT_HIGH: (OrderModel.total_amount.desc(), OrderModel.id.desc()),
            OrderSort.AMOUNT_LOW: (OrderModel.total_amount.asc(), OrderModel.id.asc()),
        }[query.sort_by]

        total_stmt = select(func.count()).select_from(OrderModel).where(*conditions)
        total = (await self.session.execute(total_stmt)).scalar_one()

        stmt = (
            select(OrderModel)
            .where(*conditions)
            .order_by(*order_by)
            .offset(query.offset)
            .limit(query.limit)
        )
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()], int(total)
