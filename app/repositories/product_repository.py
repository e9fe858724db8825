"""
商品目录数据库操作层
"""

from typing import Dict, Iterable, Optional

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.product import Product
from app.models.database.product_db import ProductDB


class ProductRepository:
    """商品数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, product_id: int) -> Optional[ProductDB]:
        result = await self.db.execute(
            select(ProductDB)
            .where(ProductDB.id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_ids(self, product_ids: Iterable[int]) -> Dict[int, ProductDB]:
        """批量获取商品，按ID索引"""
        ids = list(set(product_ids))
        if not ids:
            return {}

        result = await self.db.execute(
            select(ProductDB)
            .where(ProductDB.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return {product.id: product for product in result.scalars().all()}

    async def reserve_stock(self, product_id: int, quantity: int) -> bool:
        """扣减库存，库存不足时不更新并返回False"""
        result = await self.db.execute(
            update(ProductDB)
            .where(and_(ProductDB.id == product_id, ProductDB.stock >= quantity))
            .values(stock=ProductDB.stock - quantity)
        )
        return result.rowcount > 0

    async def release_stock(self, product_id: int, quantity: int) -> None:
        """订单取消后归还库存"""
        await self.db.execute(
            update(ProductDB)
            .where(ProductDB.id == product_id)
            .values(stock=ProductDB.stock + quantity)
        )

    def to_model(self, db_product: ProductDB) -> Product:
        """转换为Pydantic模型"""
        return Product(
            id=db_product.id,
            name=db_product.name,
            slug=db_product.slug,
            price=db_product.price,
            thumbnail=db_product.thumbnail,
            stock=db_product.stock or 0,
            is_active=db_product.is_active
        )
