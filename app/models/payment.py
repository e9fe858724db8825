"""
支付相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class PaymentProvider(str, Enum):
    """支付渠道枚举"""
    STRIPE = "stripe"
    RAZORPAY = "razorpay"


class PaymentOrderStatus(str, Enum):
    """渠道预下单状态"""
    PENDING = "pending"
    PAID = "paid"


class Payment(BaseModel):
    """支付记录模型"""

    id: Optional[int] = None
    order_id: int
    user_id: Optional[str] = None
    provider: PaymentProvider
    provider_payment_id: str
    provider_order_id: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    currency: str
    status: str = "completed"
    provider_metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class PaymentOrder(BaseModel):
    """渠道预下单模型"""

    id: str
    user_id: str
    order_id: int
    course_id: Optional[str] = None
    provider: PaymentProvider
    provider_order_id: str
    provider_payment_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: PaymentOrderStatus = PaymentOrderStatus.PENDING
    created_at: Optional[datetime] = None


class ProviderSession(BaseModel):
    """渠道侧支付句柄（Stripe Checkout Session 或 Razorpay Order）"""

    provider: PaymentProvider
    reference: str = Field(..., description="渠道会话/订单ID")
    url: Optional[str] = Field(None, description="Stripe托管收银台地址")
    amount_minor: int = Field(..., ge=0, description="最小货币单位金额")
    currency: str
    status: Optional[str] = Field(None, description="渠道侧状态")


class CheckoutSessionResult(BaseModel):
    """发起支付后返回给调用方的结果"""

    order_id: int
    order_number: str
    session: ProviderSession
    key_id: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        """按渠道返回前端需要的字段"""
        if self.session.provider == PaymentProvider.STRIPE:
            return {
                "sessionId": self.session.reference,
                "sessionUrl": self.session.url,
                "orderId": self.order_id,
                "orderNumber": self.order_number,
            }
        return {
            "razorpayOrderId": self.session.reference,
            "amount": self.session.amount_minor,
            "currency": self.session.currency,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "keyId": self.key_id,
        }


class VerificationOutcome(BaseModel):
    """支付验证结果"""

    order_id: int
    already_processed: bool = Field(False, description="重复验证时为True，不产生新的支付记录")
    payment_id: Optional[int] = None
    enrolled_course_ids: list = Field(default_factory=list)


class StripeVerifyRequest(BaseModel):
    """Stripe回跳页确认请求"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", min_length=1, max_length=255)
    order_id: int = Field(..., alias="orderId", ge=1)


class RazorpayVerifyRequest(BaseModel):
    """Razorpay回调确认请求"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    razorpay_order_id: str = Field(..., min_length=1, max_length=255)
    razorpay_payment_id: str = Field(..., min_length=1, max_length=255)
    razorpay_signature: str = Field(..., min_length=1, max_length=255)
    order_id: int = Field(..., alias="orderId", ge=1)


class RefundRequest(BaseModel):
    """退款请求"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    order_id: int = Field(..., alias="orderId", ge=1)
    reason: str = Field(..., min_length=1, max_length=1000)


class RefundResult(BaseModel):
    """退款结果"""

    order_id: int
    refund_id: str


class StripeWebhookEvent(BaseModel):
    """已验签(或显式允许未签名)的Stripe事件"""

    id: Optional[str] = None
    type: str
    data_object: Dict[str, Any] = Field(default_factory=dict)
    verified: bool = True

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], verified: bool) -> "StripeWebhookEvent":
        """从事件字典构造"""
        data = payload.get("data") or {}
        return cls(
            id=payload.get("id"),
            type=payload.get("type") or "",
            data_object=dict(data.get("object") or {}),
            verified=verified
        )
