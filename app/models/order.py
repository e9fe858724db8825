"""
订单相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional, Dict, Any, FrozenSet
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from enum import Enum


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"  # 待处理
    PROCESSING = "processing"  # 已支付，处理中
    SHIPPED = "shipped"  # 已发货
    DELIVERED = "delivered"  # 已送达
    CANCELLED = "cancelled"  # 已取消
    REFUNDED = "refunded"  # 已退款


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"  # 待支付
    COMPLETED = "completed"  # 已支付
    FAILED = "failed"  # 支付失败
    REFUNDED = "refunded"  # 已退款


class PaymentMethod(str, Enum):
    """支付方式枚举"""
    STRIPE = "stripe"
    RAZORPAY = "razorpay"
    COD = "cod"


class FulfillmentKind(str, Enum):
    """履约类型 - 只有报名记录这一步按类型分支"""
    PHYSICAL_GOODS = "physical_goods"
    COURSE_ENROLLMENT = "course_enrollment"


# 支付状态允许的迁移
PAYMENT_STATUS_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

# 只有这些订单状态可以取消
CANCELLABLE_ORDER_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    """检查支付状态迁移是否合法"""
    return target in PAYMENT_STATUS_TRANSITIONS.get(PaymentStatus(current), frozenset())


class Address(BaseModel):
    """收货/账单地址"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$", max_length=255)
    phone: str = Field(..., min_length=1, max_length=50)
    street: str = Field(..., min_length=1, max_length=500)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., alias="postalCode", min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)


class CartItem(BaseModel):
    """购物车行 - 只接受商品ID和数量，价格永远以服务端目录为准"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    product_id: int = Field(..., alias="productId", ge=1)
    quantity: int = Field(..., ge=1, le=1000)


class CheckoutRequest(BaseModel):
    """实物商品结账请求"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    items: List[CartItem] = Field(..., min_length=1, description="购物车商品")
    shipping_address: Address = Field(..., alias="shippingAddress")
    billing_address: Optional[Address] = Field(None, alias="billingAddress")
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    coupon_code: Optional[str] = Field(None, alias="couponCode", min_length=1, max_length=50)

    @field_validator("items")
    @classmethod
    def validate_unique_products(cls, v):
        """同一商品只能出现一次"""
        product_ids = [item.product_id for item in v]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("duplicate productId in items")
        return v


class CourseCheckoutRequest(BaseModel):
    """课程结账请求"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    course_id: str = Field(..., alias="courseId", min_length=1, max_length=50)
    email: Optional[str] = Field(None, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$", max_length=255)
    coupon_code: Optional[str] = Field(None, alias="couponCode", min_length=1, max_length=50)


class OrderCancelRequest(BaseModel):
    """取消订单请求"""

    model_config = ConfigDict(extra="forbid")

    reason: Optional[str] = Field(None, max_length=1000)


class OrderItem(BaseModel):
    """订单项目模型 - 下单时的快照"""

    id: Optional[int] = Field(None, description="项目ID")
    product_id: Optional[int] = Field(None, description="商品ID")
    course_id: Optional[str] = Field(None, description="课程ID")
    item_name: str = Field(..., description="名称快照")
    item_image: Optional[str] = Field(None, description="图片快照")
    unit_price: Decimal = Field(..., ge=0, description="单价")
    quantity: int = Field(default=1, ge=1, description="数量")
    line_total: Decimal = Field(..., ge=0, description="行小计")

    @model_validator(mode="after")
    def validate_line_total(self):
        """验证行小计 = 单价 × 数量"""
        if self.unit_price * self.quantity != self.line_total:
            raise ValueError("line_total must equal unit_price * quantity")
        return self


class PriceCalculation(BaseModel):
    """价格计算结果模型"""

    items: List[OrderItem] = Field(..., description="订单项目")
    subtotal: Decimal = Field(..., ge=0, description="商品小计")
    tax: Decimal = Field(default=Decimal("0.00"), ge=0, description="税费")
    shipping: Decimal = Field(default=Decimal("0.00"), ge=0, description="运费")
    discount: Decimal = Field(default=Decimal("0.00"), ge=0, description="折扣金额")
    total: Decimal = Field(..., ge=0, description="订单总额")
    coupon_code: Optional[str] = Field(None, description="使用的优惠券代码")

    @model_validator(mode="after")
    def validate_total(self):
        """total = subtotal + tax + shipping - discount"""
        if self.subtotal + self.tax + self.shipping - self.discount != self.total:
            raise ValueError("total must equal subtotal + tax + shipping - discount")
        return self


class Order(BaseModel):
    """订单基础模型"""

    id: int = Field(..., description="订单ID")
    order_number: str = Field(..., description="订单号")
    user_id: str = Field(..., description="用户ID")
    fulfillment_kind: FulfillmentKind = Field(default=FulfillmentKind.PHYSICAL_GOODS)
    items: List[OrderItem] = Field(default_factory=list, description="订单项目列表")
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    applied_coupon_code: Optional[str] = None
    status: OrderStatus = Field(default=OrderStatus.PENDING)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    payment_method: PaymentMethod
    payment_reference: Optional[str] = Field(None, description="渠道会话/订单ID")
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    contact_email: Optional[str] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    @property
    def course_ids(self) -> List[str]:
        """订单中的课程ID"""
        return [item.course_id for item in self.items if item.course_id]

    def is_course_order(self) -> bool:
        return self.fulfillment_kind == FulfillmentKind.COURSE_ENROLLMENT


class OrderResponse(BaseModel):
    """订单响应模型"""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    order_number: str = Field(..., serialization_alias="orderNumber")
    fulfillment_kind: FulfillmentKind = Field(..., serialization_alias="fulfillmentKind")
    items: List[Dict[str, Any]]
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    status: OrderStatus
    payment_status: PaymentStatus = Field(..., serialization_alias="paymentStatus")
    payment_method: PaymentMethod = Field(..., serialization_alias="paymentMethod")
    shipping_address: Optional[Dict[str, Any]] = Field(None, serialization_alias="shippingAddress")
    billing_address: Optional[Dict[str, Any]] = Field(None, serialization_alias="billingAddress")
    tracking_number: Optional[str] = Field(None, serialization_alias="trackingNumber")
    notes: Optional[str] = None
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    paid_at: Optional[datetime] = Field(None, serialization_alias="paidAt")

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        """从Order模型创建响应对象"""
        return cls(
            id=order.id,
            order_number=order.order_number,
            fulfillment_kind=order.fulfillment_kind,
            items=[
                {
                    "productId": item.product_id,
                    "courseId": item.course_id,
                    "name": item.item_name,
                    "image": item.item_image,
                    "price": str(item.unit_price),
                    "quantity": item.quantity,
                    "total": str(item.line_total),
                }
                for item in order.items
            ],
            subtotal=order.subtotal,
            tax=order.tax,
            shipping=order.shipping,
            discount=order.discount,
            total=order.total,
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            shipping_address=order.shipping_address,
            billing_address=order.billing_address,
            tracking_number=order.tracking_number,
            notes=order.notes,
            created_at=order.created_at,
            paid_at=order.paid_at
        )
