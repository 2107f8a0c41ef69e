"""
用户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    """
    用户数据库模型

    认证相关字段由认证服务维护，订单流程只读取身份与角色
    """
    __tablename__ = "users"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 用户基本信息
    email = Column(String(255), unique=True, index=True, nullable=False, comment="邮箱")
    first_name = Column(String(100), nullable=False, comment="名")
    last_name = Column(String(100), nullable=False, comment="姓")
    phone = Column(String(30), nullable=True, comment="手机号")

    # 角色与状态
    role = Column(String(20), nullable=False, default="user", index=True, comment="角色: user/admin")
    is_active = Column(Boolean, default=True, nullable=False, comment="是否激活")

    # 时间信息
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    def __repr__(self):
        return f"<UserModel(id={self.id}, email='{self.email}', role='{self.role}')>"
