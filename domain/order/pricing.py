"""
订单项计价

费用与税金分别按半数进位取整后再求和，与历史订单数据保持一致。
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

SERVICE_FEE_RATE = Decimal("0.035")
TAX_RATE = Decimal("0.075")


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_service_fee(amount: int) -> int:
    """平台服务费 3.5%"""
    return round_half_up(Decimal(amount) * SERVICE_FEE_RATE)


def calculate_taxes(amount: int) -> int:
    """增值税 7.5%"""
    return round_half_up(Decimal(amount) * TAX_RATE)


@dataclass(frozen=True)
class ItemPricing:
    unit_price: int
    quantity: int
    total_price: int
    shipping_cost: int
    item_service_fee: int
    item_taxes: int
    item_total: int

    @property
    def seller_revenue(self) -> int:
        return self.total_price - self.item_service_fee


def price_item(unit_price: int, quantity: int, domestic_shipping: int = 0) -> ItemPricing:
    """计算单个购物车行的金额明细（纯函数）"""
    total_price = unit_price * quantity
    shipping_cost = domestic_shipping * quantity
    fee = calculate_service_fee(total_price)
    taxes = calculate_taxes(total_price + fee)
    return ItemPricing(
        unit_price=unit_price,
        quantity=quantity,
        total_price=total_price,
        shipping_cost=shipping_cost,
        item_service_fee=fee,
        item_taxes=taxes,
        item_total=total_price + shipping_cost + fee + taxes,
    )
