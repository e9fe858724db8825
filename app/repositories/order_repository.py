"""
订单数据库操作层

所有状态迁移都是带前置条件的单条UPDATE，影响行数为0即表示状态已被其他请求改变
"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timezone

from sqlalchemy import select, update, and_, case, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import (
    Order, OrderItem, OrderStatus, PaymentStatus, CANCELLABLE_ORDER_STATUSES, can_transition_payment
)
from app.models.database.order_db import OrderDB, OrderItemDB


class OrderRepository:
    """订单数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, order_id: int) -> Optional[OrderDB]:
        """根据订单ID获取订单（包含订单项）"""
        result = await self.db.execute(
            select(OrderDB)
            .where(OrderDB.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user_order(self, order_id: int, user_id: str) -> Optional[OrderDB]:
        """获取属于指定用户的订单"""
        result = await self.db.execute(
            select(OrderDB)
            .where(and_(OrderDB.id == order_id, OrderDB.user_id == user_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user_orders(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[OrderDB]:
        """获取用户订单列表"""
        conditions = [OrderDB.user_id == user_id]

        if status_filter:
            conditions.append(OrderDB.status == status_filter)

        query = select(OrderDB).where(
            and_(*conditions)
        ).order_by(desc(OrderDB.created_at), desc(OrderDB.id)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def order_number_exists(self, order_number: str) -> bool:
        result = await self.db.execute(
            select(OrderDB.id).where(OrderDB.order_number == order_number)
        )
        return result.first() is not None

    async def create_order_with_items(
        self,
        order_number: str,
        user_id: str,
        order_fields: Dict[str, Any],
        items: List[OrderItem]
    ) -> Optional[OrderDB]:
        """在SAVEPOINT中创建订单及订单项

        订单号冲突时回滚该SAVEPOINT并返回None，由调用方换号重试；
        其他约束错误原样抛出
        """
        db_order = OrderDB(
            order_number=order_number,
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            items=[
                OrderItemDB(
                    product_id=item.product_id,
                    course_id=item.course_id,
                    item_name=item.item_name,
                    item_image=item.item_image,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    line_total=item.line_total
                )
                for item in items
            ],
            **order_fields
        )

        try:
            async with self.db.begin_nested():
                self.db.add(db_order)
                await self.db.flush()
        except IntegrityError:
            if await self.order_number_exists(order_number):
                return None
            raise

        # 加载服务端默认值（created_at等）
        await self.db.refresh(db_order)
        return db_order

    async def attach_payment_reference(self, order_id: int, reference: str) -> bool:
        """记录渠道会话/订单ID，仅限未支付订单"""
        result = await self.db.execute(
            update(OrderDB)
            .where(
                and_(
                    OrderDB.id == order_id,
                    OrderDB.payment_status == PaymentStatus.PENDING.value
                )
            )
            .values(payment_reference=reference, updated_at=datetime.now(timezone.utc))
        )
        return result.rowcount > 0

    async def transition_payment_status(
        self,
        order_id: int,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        order_status: Optional[OrderStatus] = None,
        **values: Any
    ) -> bool:
        """条件更新支付状态

        只有当前支付状态等于from_status（且订单状态等于order_status）时才更新，返回是否更新成功；
        不在迁移表中的迁移直接抛ValueError
        """
        if not can_transition_payment(from_status, to_status):
            raise ValueError(f"Illegal payment status transition {from_status.value} -> {to_status.value}")

        conditions = [
            OrderDB.id == order_id,
            OrderDB.payment_status == from_status.value
        ]
        if order_status is not None:
            conditions.append(OrderDB.status == order_status.value)

        result = await self.db.execute(
            update(OrderDB)
            .where(and_(*conditions))
            .values(
                payment_status=to_status.value,
                updated_at=datetime.now(timezone.utc),
                **values
            )
        )
        return result.rowcount > 0

    async def mark_paid(self, order_id: int, reference: Optional[str] = None) -> bool:
        """pending -> completed，订单进入processing

        已取消的订单不会被支付结果重新激活
        """
        values: Dict[str, Any] = {
            "status": OrderStatus.PROCESSING.value,
            "paid_at": datetime.now(timezone.utc),
        }
        if reference:
            values["payment_reference"] = reference
        return await self.transition_payment_status(
            order_id,
            PaymentStatus.PENDING,
            PaymentStatus.COMPLETED,
            order_status=OrderStatus.PENDING,
            **values
        )

    async def mark_refunded(self, order_id: int, reason: str) -> bool:
        """completed -> refunded，退款原因写入备注"""
        return await self.transition_payment_status(
            order_id,
            PaymentStatus.COMPLETED,
            PaymentStatus.REFUNDED,
            status=OrderStatus.REFUNDED.value,
            notes=reason
        )

    async def cancel_order(self, order_id: int, reason: Optional[str] = None) -> bool:
        """取消订单，仅限pending/processing

        未支付的订单同时将支付状态置为failed，之后到达的支付结果不再生效
        """
        now = datetime.now(timezone.utc)
        update_data: Dict[str, Any] = {
            "status": OrderStatus.CANCELLED.value,
            "payment_status": case(
                (OrderDB.payment_status == PaymentStatus.PENDING.value, PaymentStatus.FAILED.value),
                else_=OrderDB.payment_status
            ),
            "cancelled_at": now,
            "updated_at": now
        }
        if reason:
            update_data["notes"] = reason

        result = await self.db.execute(
            update(OrderDB)
            .where(
                and_(
                    OrderDB.id == order_id,
                    OrderDB.status.in_([s.value for s in CANCELLABLE_ORDER_STATUSES])
                )
            )
            .values(**update_data)
        )
        return result.rowcount > 0

    async def commit(self) -> None:
        """提交当前事务，调用支付渠道前使订单对外可见"""
        await self.db.commit()

    def to_model(self, db_order: OrderDB) -> Order:
        """转换为Pydantic模型"""
        items = [
            OrderItem(
                id=db_item.id,
                product_id=db_item.product_id,
                course_id=db_item.course_id,
                item_name=db_item.item_name,
                item_image=db_item.item_image,
                unit_price=db_item.unit_price,
                quantity=db_item.quantity,
                line_total=db_item.line_total
            )
            for db_item in db_order.items
        ]

        return Order(
            id=db_order.id,
            order_number=db_order.order_number,
            user_id=db_order.user_id,
            fulfillment_kind=db_order.fulfillment_kind,
            items=items,
            subtotal=db_order.subtotal,
            tax=db_order.tax,
            shipping=db_order.shipping,
            discount=db_order.discount,
            total=db_order.total,
            applied_coupon_code=db_order.applied_coupon_code,
            status=db_order.status,
            payment_status=db_order.payment_status,
            payment_method=db_order.payment_method,
            payment_reference=db_order.payment_reference,
            shipping_address=db_order.shipping_address,
            billing_address=db_order.billing_address,
            contact_email=db_order.contact_email,
            notes=db_order.notes,
            tracking_number=db_order.tracking_number,
            created_at=db_order.created_at,
            updated_at=db_order.updated_at,
            paid_at=db_order.paid_at
        )
