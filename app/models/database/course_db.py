"""
课程、报名与渠道预下单数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class CourseDB(Base):
    """课程数据库表"""

    __tablename__ = "courses"

    course_id = Column(String(50), primary_key=True, comment="课程ID")
    title = Column(String(200), nullable=False, comment="课程名称")
    thumbnail = Column(Text, comment="封面图")
    price = Column(Numeric(10, 2), nullable=False, default=0, comment="价格")
    free = Column(Boolean, nullable=False, default=False, comment="是否免费")
    status = Column(String(20), default="active", index=True, comment="课程状态")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")


class PurchaseDB(Base):
    """课程购买记录表 - (user_id, course_id) 唯一，控制内容访问"""

    __tablename__ = "purchases"

    id = Column(String(50), primary_key=True, comment="购买记录ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    course_id = Column(String(50), ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False, comment="课程ID")
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), comment="关联订单ID")

    # 免费报名时为 "FREE"
    provider_payment_id = Column(String(255), nullable=False, comment="渠道支付ID")
    provider_order_id = Column(String(255), comment="渠道订单ID")
    amount = Column(Numeric(10, 2), nullable=False, default=0, comment="金额")
    status = Column(String(20), nullable=False, default="completed", comment="状态")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_purchases_user_course"),
    )


class PaymentOrderDB(Base):
    """渠道预下单记录表 - 可能被放弃而从未产生购买"""

    __tablename__ = "payment_orders"

    id = Column(String(50), primary_key=True, comment="记录ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True, comment="关联订单ID")
    course_id = Column(String(50), ForeignKey("courses.course_id", ondelete="SET NULL"), comment="课程ID")

    provider = Column(String(20), nullable=False, comment="支付渠道")
    provider_order_id = Column(String(255), nullable=False, unique=True, comment="渠道订单ID")
    provider_payment_id = Column(String(255), comment="渠道支付ID")
    amount = Column(Numeric(10, 2), nullable=False, comment="金额")
    currency = Column(String(10), nullable=False, comment="币种")
    status = Column(String(20), nullable=False, default="pending", index=True, comment="pending/paid")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")
