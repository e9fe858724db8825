"""
订单相关数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class OrderDB(Base):
    """订单数据库表"""

    __tablename__ = "orders"

    # 主键和用户信息
    id = Column(Integer, primary_key=True, autoincrement=True, comment="订单ID")
    order_number = Column(String(50), nullable=False, unique=True, index=True, comment="订单号")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")

    # 履约类型: physical_goods / course_enrollment
    fulfillment_kind = Column(String(30), nullable=False, default="physical_goods", comment="履约类型")

    # 金额信息
    subtotal = Column(Numeric(10, 2), nullable=False, comment="商品小计")
    tax = Column(Numeric(10, 2), nullable=False, default=0, comment="税费")
    shipping = Column(Numeric(10, 2), nullable=False, default=0, comment="运费")
    discount = Column(Numeric(10, 2), nullable=False, default=0, comment="折扣金额")
    total = Column(Numeric(10, 2), nullable=False, comment="订单总额")
    applied_coupon_code = Column(String(50), comment="使用的优惠券代码")

    # 订单状态与支付状态是两个独立的维度
    status = Column(String(20), nullable=False, default="pending", index=True, comment="订单状态")
    payment_status = Column(String(20), nullable=False, default="pending", index=True, comment="支付状态")
    payment_method = Column(String(20), nullable=False, comment="支付方式")
    payment_reference = Column(String(255), comment="渠道会话/订单ID")

    # 地址与联系方式
    shipping_address = Column(JSON, comment="收货地址")
    billing_address = Column(JSON, comment="账单地址")
    contact_email = Column(String(255), comment="通知邮箱")

    # 备注
    notes = Column(Text, comment="订单备注/退款原因")
    tracking_number = Column(String(255), comment="物流单号")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")
    paid_at = Column(DateTime(timezone=True), comment="支付时间")
    cancelled_at = Column(DateTime(timezone=True), comment="取消时间")

    # 关系映射
    items = relationship("OrderItemDB", back_populates="order", cascade="all, delete-orphan", lazy="selectin")


class OrderItemDB(Base):
    """订单项目数据库表 - 下单时的商品快照，创建后不再修改"""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="项目ID")
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True, comment="订单ID")

    # 商品或课程的软引用，目录删除后置空
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, comment="商品ID")
    course_id = Column(String(50), ForeignKey("courses.course_id", ondelete="SET NULL"), nullable=True, comment="课程ID")

    # 下单时捕获的名称与图片
    item_name = Column(String(255), nullable=False, comment="名称快照")
    item_image = Column(Text, comment="图片快照")

    # 价格信息
    unit_price = Column(Numeric(10, 2), nullable=False, comment="单价")
    quantity = Column(Integer, nullable=False, default=1, comment="数量")
    line_total = Column(Numeric(10, 2), nullable=False, comment="行小计")

    order = relationship("OrderDB", back_populates="items")


class PaymentDB(Base):
    """支付记录表 - 每笔成功的渠道交易一行"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="支付记录ID")
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True, comment="订单ID")
    user_id = Column(String(50), index=True, comment="用户ID")

    provider = Column(String(20), nullable=False, comment="支付渠道")
    provider_payment_id = Column(String(255), nullable=False, comment="渠道支付ID")
    provider_order_id = Column(String(255), comment="渠道订单/会话ID")

    amount = Column(Numeric(10, 2), nullable=False, comment="金额")
    currency = Column(String(10), nullable=False, default="USD", comment="币种")
    status = Column(String(20), nullable=False, default="completed", comment="支付状态")
    # metadata 是 declarative 保留字
    provider_metadata = Column("metadata", JSON, comment="渠道原始回调数据")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        UniqueConstraint("provider", "provider_payment_id", name="uq_payments_provider_payment"),
    )
