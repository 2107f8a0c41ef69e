"""
商品领域实体 - 订单只关心库存、价格与卖家
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from domain.common.exceptions import DomainValidationException


@dataclass
class Product:
    """
    商品实体

    业务规则：
    1. 价格与运费均为非负整数（NGN 主币单位）
    2. 库存数量不可为负
    3. 库存归零时商品标记为已售出
    """

    id: Optional[int]
    seller_id: int
    title: str
    selling_price: int
    quantity: int
    domestic_shipping: int = 0
    brand: Optional[str] = None
    size: Optional[str] = None
    condition: Optional[str] = None
    category: Optional[str] = None
    images: List[str] = field(default_factory=list)
    sold: bool = False
    sold_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.selling_price < 0:
            raise DomainValidationException("Selling price cannot be negative", field="selling_price")
        if self.domestic_shipping < 0:
            raise DomainValidationException("Shipping cost cannot be negative", field="domestic_shipping")
        if self.quantity < 0:
            raise DomainValidationException("Quantity cannot be negative", field="quantity")
        if self.images is None:
            self.images = []

    @property
    def primary_image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    def can_supply(self, quantity: int) -> bool:
        return not self.sold and self.quantity >= quantity

    def consume(self, quantity: int) -> None:
        """扣减库存（内存版本，与仓储中的原子条件扣减语义一致）"""
        if not self.can_supply(quantity):
            raise DomainValidationException(
                f"Only {self.quantity} items available",
                field="quantity",
            )
        self.quantity -= quantity
        now = datetime.now(timezone.utc)
        if self.quantity == 0:
            self.sold = True
            self.sold_at = now
        self.updated_at = now

    def restore(self, quantity: int) -> None:
        """归还库存并清除售出标记"""
        self.quantity += quantity
        self.sold = False
        self.sold_at = None
        self.updated_at = datetime.now(timezone.utc)
