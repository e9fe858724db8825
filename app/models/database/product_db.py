"""
商品数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime
from sqlalchemy.sql import func
from app.core.database import Base


class ProductDB(Base):
    """商品数据库表"""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="商品ID")
    name = Column(String(255), nullable=False, comment="商品名称")
    slug = Column(String(255), nullable=False, unique=True, comment="URL标识")
    price = Column(Numeric(10, 2), nullable=False, comment="售价")
    thumbnail = Column(Text, comment="缩略图")
    stock = Column(Integer, nullable=False, default=0, comment="库存")
    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否上架")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")
