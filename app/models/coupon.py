"""
优惠券相关数据模型
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum


CENT = Decimal("0.01")


class CouponType(str, Enum):
    """优惠券类型枚举"""
    PERCENTAGE = "percentage"  # 百分比折扣券
    FIXED_AMOUNT = "fixed_amount"  # 固定金额折扣券


class CouponStatus(str, Enum):
    """优惠券状态枚举"""
    ACTIVE = "active"  # 有效
    INACTIVE = "inactive"  # 无效
    EXPIRED = "expired"  # 已过期


def as_utc(value: datetime) -> datetime:
    """无时区的时间按UTC处理"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Coupon(BaseModel):
    """优惠券基础模型"""

    coupon_id: str = Field(..., description="优惠券ID")
    coupon_code: str = Field(..., min_length=1, max_length=50, description="优惠券代码")
    coupon_name: str = Field(..., description="优惠券名称")
    coupon_type: CouponType = Field(..., description="优惠券类型")
    discount_value: Decimal = Field(..., ge=0, description="折扣值")
    min_order_amount: Decimal = Field(default=Decimal("0"), ge=0, description="最小订单金额")
    max_discount: Optional[Decimal] = Field(None, ge=0, description="最大折扣金额")
    valid_from: datetime = Field(..., description="有效开始时间")
    valid_to: datetime = Field(..., description="有效结束时间")
    usage_limit: Optional[int] = Field(None, ge=1, description="总使用次数限制")
    used_count: int = Field(default=0, ge=0, description="已使用次数")
    description: Optional[str] = Field(None, max_length=500, description="优惠券描述")
    status: CouponStatus = Field(default=CouponStatus.ACTIVE, description="优惠券状态")

    @field_validator("valid_from", "valid_to")
    @classmethod
    def normalize_timezone(cls, v):
        return as_utc(v)

    @model_validator(mode="after")
    def validate_coupon(self):
        """验证有效期与折扣值"""
        if self.valid_to <= self.valid_from:
            raise ValueError("结束时间必须晚于开始时间")
        if self.coupon_type == CouponType.PERCENTAGE and self.discount_value > Decimal("1"):
            raise ValueError("百分比折扣值不能超过1")
        if self.coupon_type == CouponType.FIXED_AMOUNT and self.discount_value <= 0:
            raise ValueError("固定金额折扣值必须大于0")
        return self

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """检查优惠券是否有效"""
        now = as_utc(now or datetime.now(timezone.utc))
        return (
            self.status == CouponStatus.ACTIVE and
            self.valid_from <= now <= self.valid_to and
            (self.usage_limit is None or self.used_count < self.usage_limit)
        )

    def calculate_discount(self, order_amount: Decimal) -> Decimal:
        """计算具体折扣金额"""
        if order_amount < self.min_order_amount:
            return Decimal("0.00")

        if self.coupon_type == CouponType.PERCENTAGE:
            discount = order_amount * self.discount_value
        else:
            discount = self.discount_value

        # 应用最大折扣限制
        if self.max_discount and discount > self.max_discount:
            discount = self.max_discount

        # 折扣不能超过订单金额
        return min(discount, order_amount).quantize(CENT, rounding=ROUND_HALF_UP)


class CouponValidation(BaseModel):
    """优惠券验证结果"""

    is_valid: bool
    coupon: Optional[Coupon] = None
    discount_amount: Decimal = Decimal("0.00")
    validation_errors: List[str] = Field(default_factory=list)

    @property
    def error_message(self) -> str:
        return "; ".join(self.validation_errors)
