"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_by_reference(self, reference: str) -> Optional[Payment]:
        """根据支付流水号获取支付"""
        pass

    @abstractmethod
    async def get_latest_for_order(
        self,
        order_id: int,
        status: Optional[PaymentStatus] = None,
    ) -> Optional[Payment]:
        """获取订单最近一笔支付（可按状态过滤）"""
        pass

    @abstractmethod
    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Payment], int]:
        """获取用户的支付列表，返回 (当前页, 总数)"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass
