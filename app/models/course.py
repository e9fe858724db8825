"""
课程与报名相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


FREE_PAYMENT_SENTINEL = "FREE"


class CourseStatus(str, Enum):
    """课程状态枚举"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"
    ARCHIVED = "archived"


class PurchaseStatus(str, Enum):
    """购买记录状态"""
    COMPLETED = "completed"
    REFUNDED = "refunded"


class Course(BaseModel):
    """课程基础模型"""

    course_id: str = Field(..., description="课程唯一标识")
    title: str = Field(..., min_length=1, max_length=200, description="课程名称")
    thumbnail: Optional[str] = None
    price: Decimal = Field(..., ge=0, description="价格")
    free: bool = Field(default=False, description="是否免费")
    status: CourseStatus = Field(default=CourseStatus.ACTIVE, description="课程状态")

    def is_available(self) -> bool:
        """检查课程是否可用"""
        return self.status == CourseStatus.ACTIVE


class Purchase(BaseModel):
    """课程购买记录"""

    id: str
    user_id: str
    course_id: str
    order_id: Optional[int] = None
    provider_payment_id: str
    provider_order_id: Optional[str] = None
    amount: Decimal
    status: PurchaseStatus = PurchaseStatus.COMPLETED
    created_at: Optional[datetime] = None

    def is_free(self) -> bool:
        return self.provider_payment_id == FREE_PAYMENT_SENTINEL


class FreeEnrollmentRequest(BaseModel):
    """免费课程报名请求"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    course_id: str = Field(..., alias="courseId", min_length=1, max_length=50)


class EnrollmentOutcome(BaseModel):
    """报名结果"""

    course_id: str
    enrolled: bool = Field(..., description="本次是否新建了购买记录")
    already_enrolled: bool = Field(False, description="此前已报名")
    purchase: Optional[Purchase] = None
