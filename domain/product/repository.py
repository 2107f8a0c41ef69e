"""
商品仓储接口
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from .entity import Product


class ProductRepository(ABC):
    """商品仓储抽象接口"""

    @abstractmethod
    async def create(self, product: Product) -> Product:
        """创建商品"""
        pass

    @abstractmethod
    async def get_by_id(self, product_id: int) -> Optional[Product]:
        """根据ID获取商品"""
        pass

    @abstractmethod
    async def get_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """批量获取商品，返回 id -> Product 映射"""
        pass

    @abstractmethod
    async def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        原子条件扣减库存

        仅当 quantity >= 扣减数量且商品未售出时扣减；扣减后为 0 则标记已售出。
        返回是否扣减成功。
        """
        pass

    @abstractmethod
    async def restore_stock(self, product_id: int, quantity: int) -> None:
        """归还库存并清除售出标记"""
        pass
