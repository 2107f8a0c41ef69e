"""
用户仓储接口 - 定义数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional
from .entity import User


class UserRepository(ABC):
    """用户仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, user: User) -> User:
        """创建用户"""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """根据ID获取用户"""
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """根据邮箱获取用户"""
        pass

    @abstractmethod
    async def get_many(self, user_ids: Iterable[int]) -> Dict[int, User]:
        """批量获取用户，返回 id -> User 映射（不存在的ID被忽略）"""
        pass
