"""
商品数据库模型 - 只包含订单流程需要的字段
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String
from datetime import datetime, timezone

from .base import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True, comment="卖家ID")

    title = Column(String(255), nullable=False, comment="标题")
    brand = Column(String(100), nullable=True, comment="品牌")
    size = Column(String(50), nullable=True, comment="尺码")
    condition = Column(String(50), nullable=True, comment="成色")
    category = Column(String(100), nullable=True, comment="分类")
    images = Column(JSON, nullable=False, default=list, comment="图片URL列表")

    # 价格（NGN 主币单位，整数）
    selling_price = Column(Integer, nullable=False, comment="售价")
    domestic_shipping = Column(Integer, nullable=False, default=0, comment="单件国内运费")

    # 库存
    quantity = Column(Integer, nullable=False, default=1, comment="在库数量")
    sold = Column(Boolean, nullable=False, default=False, index=True, comment="是否已售出")
    sold_at = Column(DateTime(timezone=True), nullable=True, comment="售出时间")

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

    __table_args__ = (
        Index("ix_products_seller_sold", "seller_id", "sold"),
    )

    def __repr__(self):
        return f"<ProductModel(id={self.id}, title='{self.title}', quantity={self.quantity}, sold={self.sold})>"
