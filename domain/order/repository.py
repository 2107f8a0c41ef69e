"""
订单仓储接口
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .entity import Order, OrderStatus


class OrderScope(str, Enum):
    """列表查询的可见范围"""
    ALL = "all"                   # 管理员
    PARTICIPANT = "participant"   # 买家或卖家
    BUYER = "buyer"
    SELLER = "seller"


class OrderSort(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    AMOUNT_HIGH = "amount-high"
    AMOUNT_LOW = "amount-low"


@dataclass
class OrderQuery:
    page: int = 1
    limit: int = 20
    status: Optional[OrderStatus] = None
    search: Optional[str] = None
    sort_by: OrderSort = OrderSort.NEWEST
    scope: OrderScope = OrderScope.ALL
    user_id: Optional[int] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class OrderRepository(ABC):
    """订单仓储抽象接口，订单项随订单一起读写"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单及订单项；订单号冲突时抛出 DuplicateOrderNumberException"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_number(self, order_number: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """保存订单及其订单项的变更"""
        pass

    @abstractmethod
    async def list(self, query: OrderQuery) -> Tuple[List[Order], int]:
        """分页查询，返回 (当前页订单, 总数)"""
        pass
