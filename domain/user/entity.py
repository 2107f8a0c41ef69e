"""
用户领域实体 - 订单流程只读取用户身份与角色
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from dataclasses import dataclass


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass
class User:
    """用户实体 - 买家与卖家共用同一实体，卖家身份由订单中的 seller_ids 决定"""

    id: Optional[int]
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole = UserRole.USER
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.role, str) and not isinstance(self.role, UserRole):
            self.role = UserRole(self.role)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
