"""
订单聚合计算

把购物车行转换为计算结果（calculate），再把通过校验的计算结果转换为
Order + OrderItem + SellerPayout（build_order）。这里的函数都不访问仓储。
"""
from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

from domain.product.entity import Product
from domain.user.entity import User
from .availability import check_availability
from .entity import Order, OrderItem, OrderPaymentStatus, OrderStatus, SellerPayout, ShippingAddress
from .pricing import price_item

ORDER_NUMBER_PREFIX = "ORD"


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    selected_size: Optional[str] = None


@dataclass
class CalculatedItem:
    product_id: int
    product_title: str
    unit_price: int
    quantity: int
    total_price: int
    shipping_cost: int
    item_service_fee: int
    item_taxes: int
    item_total: int
    seller_id: int
    seller_name: Optional[str]
    available: bool
    availability_message: Optional[str] = None
    selected_size: Optional[str] = None

    @property
    def seller_revenue(self) -> int:
        return self.total_price - self.item_service_fee


@dataclass
class OrderCalculation:
    items: List[CalculatedItem] = field(default_factory=list)
    subtotal: int = 0
    total_shipping_cost: int = 0
    total_service_fee: int = 0
    total_taxes: int = 0
    coupon_discount: int = 0
    total_amount: int = 0
    currency: str = "NGN"
    item_count: int = 0
    seller_count: int = 0
    unavailable_items: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def available_items(self) -> List[CalculatedItem]:
        return [item for item in self.items if item.available]

    @property
    def seller_ids(self) -> List[int]:
        seen: Dict[int, None] = {}
        for item in self.available_items:
            seen.setdefault(item.seller_id, None)
        return list(seen)


def calculate(
    lines: Sequence[CartLine],
    products: Mapping[int, Product],
    sellers: Mapping[int, User],
    buyer_id: int,
    *,
    currency: str = "NGN",
) -> OrderCalculation:
    """
    计算订单金额

    只有可售的订单项计入金额、件数与卖家数；不可售的订单项仍出现在 items 中，
    并记录在 unavailable_items。商品不存在时同时写入 errors。
    """
    result = OrderCalculation(currency=currency)

    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            result.errors.append(f"Product not found: {line.product_id}")
            result.unavailable_items.append(line.product_id)
            continue

        availability = check_availability(product, line.quantity, buyer_id)
        if not availability.available:
            result.unavailable_items.append(line.product_id)

        pricing = price_item(product.selling_price, line.quantity, product.domestic_shipping)
        seller = sellers.get(product.seller_id)
        item = CalculatedItem(
            product_id=line.product_id,
            product_title=product.title,
            unit_price=pricing.unit_price,
            quantity=pricing.quantity,
            total_price=pricing.total_price,
            shipping_cost=pricing.shipping_cost,
            item_service_fee=pricing.item_service_fee,
            item_taxes=pricing.item_taxes,
            item_total=pricing.item_total,
            seller_id=product.seller_id,
            seller_name=seller.full_name if seller else None,
            available=availability.available,
            availability_message=availability.message,
            selected_size=line.selected_size,
        )
        result.items.append(item)

        if item.available:
            result.subtotal += item.total_price
            result.total_shipping_cost += item.shipping_cost
            result.total_service_fee += item.item_service_fee
            result.total_taxes += item.item_taxes
            result.item_count += item.quantity

    result.seller_count = len(result.seller_ids)
    result.total_amount = (
        result.subtotal
        + result.total_shipping_cost
        + result.total_service_fee
        + result.total_taxes
        - result.coupon_discount
    )
    return result


def build_seller_payouts(items: Sequence[CalculatedItem]) -> List[SellerPayout]:
    """按卖家分组可售订单项；收入为 total_price - 服务费，运费与税金不计入卖家收入"""
    payouts: Dict[int, SellerPayout] = {}
    for item in items:
        if not item.available:
            continue
        payout = payouts.get(item.seller_id)
        if payout is None:
            payout = SellerPayout(seller_id=item.seller_id, seller_name=item.seller_name)
            payouts[item.seller_id] = payout
        payout.item_count += item.quantity
        payout.revenue += item.seller_revenue
        payout.service_fee += item.item_service_fee
    return list(payouts.values())


def generate_order_number(now_ms: Optional[int] = None, rand: Optional[int] = None) -> str:
    """ORD + 毫秒时间戳 + 0..999 随机数；唯一性最终由数据库唯一约束保证"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if rand is None:
        rand = random.randint(0, 999)
    return f"{ORDER_NUMBER_PREFIX}{now_ms}{rand}"


def build_order(
    calculation: OrderCalculation,
    *,
    buyer_id: int,
    order_number: str,
    shipping_address: ShippingAddress,
    products: Mapping[int, Product],
    sellers: Mapping[int, User],
    shipping_method: Optional[str] = None,
    buyer_notes: Optional[str] = None,
    at: Optional[datetime] = None,
) -> Order:
    """由已通过校验的计算结果构造新订单（PENDING）"""
    now = at or datetime.now(timezone.utc)
    items: List[OrderItem] = []
    for calc in calculation.available_items:
        product = products[calc.product_id]
        seller = sellers.get(calc.seller_id)
        items.append(
            OrderItem(
                id=None,
                order_id=None,
                product_id=calc.product_id,
                seller_id=calc.seller_id,
                product_title=product.title,
                product_image=product.primary_image,
                product_brand=product.brand,
                product_size=calc.selected_size or product.size,
                product_condition=product.condition,
                product_category=product.category,
                quantity=calc.quantity,
                unit_price=calc.unit_price,
                total_price=calc.total_price,
                shipping_cost=calc.shipping_cost,
                item_service_fee=calc.item_service_fee,
                item_taxes=calc.item_taxes,
                item_total=calc.item_total,
                seller_revenue=calc.seller_revenue,
                seller_name=calc.seller_name,
                seller_email=seller.email if seller else None,
                seller_phone=seller.phone if seller else None,
                available=calc.available,
                availability_message=calc.availability_message,
                created_at=now,
                updated_at=now,
            )
        )

    order = Order(
        id=None,
        order_number=order_number,
        buyer_id=buyer_id,
        shipping_address=shipping_address,
        status=OrderStatus.PENDING,
        subtotal=calculation.subtotal,
        total_shipping_cost=calculation.total_shipping_cost,
        total_service_fee=calculation.total_service_fee,
        total_taxes=calculation.total_taxes,
        coupon_discount=calculation.coupon_discount,
        total_amount=calculation.total_amount,
        currency=calculation.currency,
        item_count=calculation.item_count,
        seller_count=calculation.seller_count,
        seller_ids=calculation.seller_ids,
        seller_payouts=build_seller_payouts(calculation.items),
        payment_status=OrderPaymentStatus.PENDING,
        shipping_method=shipping_method,
        buyer_notes=buyer_notes,
        items=items,
        created_at=now,
        updated_at=now,
    )
    order.add_history("Order created", now)
    return order
