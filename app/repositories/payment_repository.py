"""
支付记录与渠道预下单数据库操作层
"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal
import uuid

from sqlalchemy import select, update, and_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment, PaymentOrder, PaymentOrderStatus
from app.models.database.order_db import PaymentDB
from app.models.database.course_db import PaymentOrderDB


class PaymentRepository:
    """支付记录数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_order_payments(self, order_id: int) -> List[PaymentDB]:
        """获取订单的所有支付记录"""
        result = await self.db.execute(
            select(PaymentDB)
            .where(PaymentDB.order_id == order_id)
            .order_by(PaymentDB.id)
        )
        return list(result.scalars().all())

    async def create_payment(
        self,
        order_id: int,
        user_id: Optional[str],
        provider: str,
        provider_payment_id: str,
        provider_order_id: Optional[str],
        amount: Decimal,
        currency: str,
        provider_metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[PaymentDB]:
        """插入支付记录

        (provider, provider_payment_id) 已存在时返回None
        """
        db_payment = PaymentDB(
            order_id=order_id,
            user_id=user_id,
            provider=provider,
            provider_payment_id=provider_payment_id,
            provider_order_id=provider_order_id,
            amount=amount,
            currency=currency,
            status="completed",
            provider_metadata=provider_metadata
        )

        try:
            async with self.db.begin_nested():
                self.db.add(db_payment)
                await self.db.flush()
        except IntegrityError:
            return None

        await self.db.refresh(db_payment)
        return db_payment

    async def mark_order_payments_refunded(self, order_id: int) -> int:
        """将订单的已完成支付记录标记为已退款"""
        result = await self.db.execute(
            update(PaymentDB)
            .where(
                and_(
                    PaymentDB.order_id == order_id,
                    PaymentDB.status == "completed"
                )
            )
            .values(status="refunded", updated_at=datetime.now(timezone.utc))
        )
        return result.rowcount

    def to_model(self, db_payment: PaymentDB) -> Payment:
        """转换为Pydantic模型"""
        return Payment(
            id=db_payment.id,
            order_id=db_payment.order_id,
            user_id=db_payment.user_id,
            provider=db_payment.provider,
            provider_payment_id=db_payment.provider_payment_id,
            provider_order_id=db_payment.provider_order_id,
            amount=db_payment.amount,
            currency=db_payment.currency,
            status=db_payment.status,
            provider_metadata=db_payment.provider_metadata,
            created_at=db_payment.created_at
        )


class PaymentOrderRepository:
    """渠道预下单数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_provider_order_id(self, provider_order_id: str) -> Optional[PaymentOrderDB]:
        result = await self.db.execute(
            select(PaymentOrderDB).where(PaymentOrderDB.provider_order_id == provider_order_id)
        )
        return result.scalar_one_or_none()

    async def get_user_payment_orders(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> List[PaymentOrderDB]:
        """获取用户的支付历史"""
        result = await self.db.execute(
            select(PaymentOrderDB)
            .where(PaymentOrderDB.user_id == user_id)
            .order_by(desc(PaymentOrderDB.created_at))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def create_payment_order(
        self,
        user_id: str,
        order_id: int,
        course_id: Optional[str],
        provider: str,
        provider_order_id: str,
        amount: Decimal,
        currency: str
    ) -> PaymentOrderDB:
        """记录渠道预下单"""
        db_payment_order = PaymentOrderDB(
            id=str(uuid.uuid4()),
            user_id=user_id,
            order_id=order_id,
            course_id=course_id,
            provider=provider,
            provider_order_id=provider_order_id,
            amount=amount,
            currency=currency,
            status=PaymentOrderStatus.PENDING.value
        )
        self.db.add(db_payment_order)
        await self.db.flush()
        await self.db.refresh(db_payment_order)
        return db_payment_order

    async def mark_paid(self, provider_order_id: str, provider_payment_id: str) -> bool:
        """pending -> paid"""
        result = await self.db.execute(
            update(PaymentOrderDB)
            .where(
                and_(
                    PaymentOrderDB.provider_order_id == provider_order_id,
                    PaymentOrderDB.status == PaymentOrderStatus.PENDING.value
                )
            )
            .values(
                status=PaymentOrderStatus.PAID.value,
                provider_payment_id=provider_payment_id,
                updated_at=datetime.now(timezone.utc)
            )
        )
        return result.rowcount > 0

    def to_model(self, db_payment_order: PaymentOrderDB) -> PaymentOrder:
        """转换为Pydantic模型"""
        return PaymentOrder(
            id=db_payment_order.id,
            user_id=db_payment_order.user_id,
            order_id=db_payment_order.order_id,
            course_id=db_payment_order.course_id,
            provider=db_payment_order.provider,
            provider_order_id=db_payment_order.provider_order_id,
            provider_payment_id=db_payment_order.provider_payment_id,
            amount=db_payment_order.amount,
            currency=db_payment_order.currency,
            status=db_payment_order.status,
            created_at=db_payment_order.created_at
        )
