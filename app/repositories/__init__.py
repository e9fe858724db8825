"""
仓库包初始化文件 - 数据库访问层
"""

from .order_repository import OrderRepository
from .payment_repository import PaymentRepository, PaymentOrderRepository
from .product_repository import ProductRepository
from .course_repository import CourseRepository
from .purchase_repository import PurchaseRepository
from .coupon_repository import CouponRepository

__all__ = [
    "OrderRepository",
    "PaymentRepository",
    "PaymentOrderRepository",
    "ProductRepository",
    "CourseRepository",
    "PurchaseRepository",
    "CouponRepository"
]
