"""
数据模型包初始化文件
"""

from .order import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    FulfillmentKind,
    Address,
    CartItem,
    CheckoutRequest,
    CourseCheckoutRequest,
    PriceCalculation,
    OrderResponse
)
from .payment import (
    Payment,
    PaymentOrder,
    PaymentProvider,
    ProviderSession,
    CheckoutSessionResult,
    VerificationOutcome
)
from .course import Course, Purchase, EnrollmentOutcome
from .coupon import Coupon, CouponValidation
from .product import Product

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "FulfillmentKind",
    "Address",
    "CartItem",
    "CheckoutRequest",
    "CourseCheckoutRequest",
    "PriceCalculation",
    "OrderResponse",
    "Payment",
    "PaymentOrder",
    "PaymentProvider",
    "ProviderSession",
    "CheckoutSessionResult",
    "VerificationOutcome",
    "Course",
    "Purchase",
    "EnrollmentOutcome",
    "Coupon",
    "CouponValidation",
    "Product"
]
