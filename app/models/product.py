"""
商品数据模型
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class Product(BaseModel):
    """商品目录模型"""

    id: int
    name: str
    slug: str
    price: Decimal = Field(..., ge=0)
    thumbnail: Optional[str] = None
    stock: int = 0
    is_active: bool = True
