"""
数据库模型包初始化文件
"""

from .product_db import ProductDB
from .course_db import CourseDB, PurchaseDB, PaymentOrderDB
from .coupon_db import CouponDB
from .order_db import OrderDB, OrderItemDB, PaymentDB

__all__ = [
    "ProductDB",
    "CourseDB",
    "PurchaseDB",
    "PaymentOrderDB",
    "CouponDB",
    "OrderDB",
    "OrderItemDB",
    "PaymentDB"
]
