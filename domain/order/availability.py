"""
商品可售性检查（只读，不做库存预留）
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from domain.product.entity import Product

PRODUCT_SOLD_MESSAGE = "Product is no longer available"
SELF_PURCHASE_MESSAGE = "You cannot buy your own product"


@dataclass(frozen=True)
class Availability:
    available: bool
    message: Optional[str] = None


def check_availability(product: Optional[Product], quantity: int, buyer_id: int) -> Availability:
    """
    按顺序检查：商品存在 -> 未售出 -> 库存充足 -> 非自购
    """
    if product is None:
        return Availability(False, "Product not found")
    if product.sold:
        return Availability(False, PRODUCT_SOLD_MESSAGE)
    if product.quantity < quantity:
        return Availability(False, f"Only {product.quantity} items available")
    if product.seller_id == buyer_id:
        return Availability(False, SELF_PURCHASE_MESSAGE)
    return Availability(True)
