"""
商品仓储实现 - 库存扣减使用单条条件 UPDATE 保证原子性
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.product.entity import Product
from domain.product.repository import ProductRepository
from infrastructure.models.product import ProductModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyProductRepository(ProductRepository):
    """商品仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            seller_id=model.seller_id,
            title=model.title,
            selling_price=model.selling_price,
            quantity=model.quantity,
            domestic_shipping=model.domestic_shipping or 0,
            brand=model.brand,
            size=model.size,
            condition=model.condition,
            category=model.category,
            images=list(model.images or []),
            sold=model.sold,
            sold_at=model.sold_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Product) -> ProductModel:
        return ProductModel(
            id=entity.id,
            seller_id=entity.seller_id,
            title=entity.title,
            selling_price=entity.selling_price,
            quantity=entity.quantity,
            domestic_shipping=entity.domestic_shipping,
            brand=entity.brand,
            size=entity.size,
            condition=entity.condition,
            category=entity.category,
            images=list(entity.images),
            sold=entity.sold,
            sold_at=entity.sold_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, product: Product) -> Product:
        db_product = self._to_model(product)
        self.session.add(db_product)
        await self.session.flush()
        await self.session.refresh(db_product)
        return self._to_entity(db_product)

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        result = await self.session.execute(select(ProductModel).where(ProductModel.id == product_id))
        db_product = result.scalar_one_or_none()
        return self._to_entity(db_product) if db_product else None

    async def get_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        result = await self.session.execute(select(ProductModel).where(ProductModel.id.in_(ids)))
        return {m.id: self._to_entity(m) for m in result.scalars().all()}

    async def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        UPDATE products SET quantity = quantity - :n, sold = (quantity - :n = 0), ...
        WHERE id = :id AND quantity >= :n AND sold = false
        """
        now = datetime.now(timezone.utc)
        remaining = ProductModel.quantity - quantity
        # sold/sold_at 依赖扣减前的 quantity，必须先于 quantity 赋值
        stmt = (
            update(ProductModel)
            .where(
                ProductModel.id == product_id,
                ProductModel.quantity >= quantity,
                ProductModel.sold.is_(False),
            )
            .ordered_values(
                (ProductModel.sold, case((remaining <= 0, True), else_=False)),
                (ProductModel.sold_at, case((remaining <= 0, now), else_=None)),
                (ProductModel.quantity, remaining),
                (ProductModel.updated_at, now),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        applied = result.rowcount == 1
        if not applied:
            logger.warning("product_stock_decrement_rejected", product_id=product_id, quantity=quantity)
        return applied

    async def restore_stock(self, product_id: int, quantity: int) -> None:
        now = datetime.now(timezone.utc)
        stmt = (
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(
                quantity=ProductModel.quantity + quantity,
                sold=False,
                sold_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            logger.warning("product_stock_restore_missing", product_id=product_id)
