"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    一个订单可以有多次支付尝试，最多一笔进入 completed
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键
    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(100), unique=True, nullable=False, index=True, comment="支付流水号")

    # 订单信息
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True, comment="订单ID")
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True, comment="付款用户ID")

    # 网关信息
    gateway = Column(String(30), nullable=False, index=True, comment="支付网关: paystack")
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/completed/failed/refunded"
    )
    method = Column(String(20), nullable=True, comment="支付方式: card/bank_transfer/wallet")

    # 金额（amount 为主币整数；手续费可含小数）
    amount = Column(Integer, nullable=False, comment="支付金额")
    currency = Column(String(3), nullable=False, default="NGN", comment="货币代码 ISO-4217")
    fees = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="网关手续费")
    net_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="扣除手续费后的金额")

    # 网关返回
    transaction_id = Column(String(100), nullable=True, index=True, comment="网关交易ID")
    gateway_reference = Column(String(100), nullable=True, index=True, comment="网关流水号")
    authorization_url = Column(String(500), nullable=True, comment="支付跳转地址")
    access_code = Column(String(100), nullable=True)
    gateway_response = Column(String(255), nullable=True)
    failure_reason = Column(Text, nullable=True, comment="失败原因")
    callback_url = Column(String(500), nullable=True, comment="回调地址")

    customer = Column(JSON, nullable=True, comment="网关客户信息快照")
    authorization = Column(JSON, nullable=True, comment="卡授权信息快照")
    gateway_metadata = Column(JSON, nullable=True, comment="网关原始数据")
    ip_address = Column(String(64), nullable=True)
    risk_action = Column(String(50), nullable=True)

    # 退款
    refunded = Column(Boolean, nullable=False, default=False)
    refunded_amount = Column(Integer, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refund_reason = Column(Text, nullable=True)
    refund_reference = Column(String(100), nullable=True)

    # 时间戳
    initiated_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    failed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    # 索引
    __table_args__ = (
        Index("ix_payments_user_status_created", "user_id", "status", "created_at"),
        Index("ix_payments_order_status", "order_id", "status"),
        Index("ix_payments_gateway_status", "gateway", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, reference='{self.reference}', "
            f"gateway='{self.gateway}', amount={self.amount}, status='{self.status}')>"
        )
