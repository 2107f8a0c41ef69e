"""
订单数据库模型 - 订单与订单项
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    收货地址、卖家结算记录与状态历史以 JSON 内嵌存储
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(40), unique=True, nullable=False, index=True, comment="订单号")
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True, comment="买家ID")
    status = Column(String(20), nullable=False, default="pending", index=True, comment="订单状态")

    # 金额汇总（NGN 主币单位）
    subtotal = Column(Integer, nullable=False, default=0, comment="商品小计")
    total_shipping_cost = Column(Integer, nullable=False, default=0, comment="运费合计")
    total_service_fee = Column(Integer, nullable=False, default=0, comment="平台服务费合计")
    total_taxes = Column(Integer, nullable=False, default=0, comment="税费合计")
    coupon_discount = Column(Integer, nullable=False, default=0, comment="优惠券抵扣")
    total_amount = Column(Integer, nullable=False, default=0, comment="应付总额")
    currency = Column(String(3), nullable=False, default="NGN", comment="货币")
    item_count = Column(Integer, nullable=False, default=0, comment="商品件数")
    seller_count = Column(Integer, nullable=False, default=0, comment="卖家数量")

    # 多卖家
    seller_ids = Column(JSON, nullable=False, default=list, comment="卖家ID列表")
    seller_payouts = Column(JSON, nullable=False, default=list, comment="卖家结算记录")

    # 支付
    payment_status = Column(String(20), nullable=False, default="pending", index=True, comment="支付状态")
    payment_method = Column(String(20), nullable=True, comment="支付方式")
    payment_reference = Column(String(100), nullable=True, index=True, comment="支付流水号")
    payment_gateway = Column(String(30), nullable=True, comment="支付网关")
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付时间")

    # 物流
    shipping_address = Column(JSON, nullable=False, comment="收货地址")
    shipping_method = Column(String(50), nullable=True, comment="配送方式")
    tracking_number = Column(String(100), nullable=True, comment="运单号")
    carrier_name = Column(String(100), nullable=True, comment="承运商")
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    # 状态时间
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    processing_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(Integer, nullable=True)

    # 备注与历史
    admin_notes = Column(Text, nullable=True)
    buyer_notes = Column(Text, nullable=True)
    status_history = Column(JSON, nullable=False, default=list, comment="状态变更记录")

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

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItemModel.id",
    )

    __table_args__ = (
        Index("ix_orders_buyer_status_created", "buyer_id", "status", "created_at"),
        Index("ix_orders_payment_status_status", "payment_status", "status"),
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"


class OrderItemModel(Base):
    """订单项：下单时的商品快照"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # 商品快照
    product_title = Column(String(255), nullable=False)
    product_image = Column(String(500), nullable=True)
    product_brand = Column(String(100), nullable=True)
    product_size = Column(String(50), nullable=True)
    product_condition = Column(String(50), nullable=True)
    product_category = Column(String(100), nullable=True)

    # 数量与价格
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)
    shipping_cost = Column(Integer, nullable=False, default=0)
    item_service_fee = Column(Integer, nullable=False, default=0)
    item_taxes = Column(Integer, nullable=False, default=0)
    item_total = Column(Integer, nullable=False)

    # 卖家与结算
    seller_name = Column(String(200), nullable=True)
    seller_email = Column(String(255), nullable=True)
    seller_phone = Column(String(30), nullable=True)
    seller_revenue = Column(Integer, nullable=False)
    seller_paid = Column(Boolean, nullable=False, default=False, index=True)
    seller_payout_reference = Column(String(100), nullable=True)
    seller_paid_at = Column(DateTime(timezone=True), nullable=True)

    # 订单项状态
    item_status = Column(String(20), nullable=False, default="pending", index=True)
    tracking_number = Column(String(100), nullable=True)
    carrier_name = Column(String(100), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # 可售性与库存扣减标记
    available = Column(Boolean, nullable=False, default=True)
    availability_message = Column(String(255), nullable=True)
    inventory_applied = Column(Boolean, nullable=False, default=False, comment="是否已扣减库存")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    order = relationship("OrderModel", back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order_status", "order_id", "item_status"),
        Index("ix_order_items_seller_id_paid", "seller_id", "seller_paid"),
    )

    def __repr__(self):
        return f"<OrderItemModel(id={self.id}, order_id={self.order_id}, product_id={self.product_id})>"
