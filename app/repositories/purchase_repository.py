"""
课程购买记录数据库操作层

(user_id, course_id) 唯一约束是重复报名的最终裁决者
"""

from typing import List, Optional
from datetime import datetime, timezone
from decimal import Decimal
import uuid

from sqlalchemy import select, update, and_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.course import Purchase, PurchaseStatus
from app.models.database.course_db import PurchaseDB


class PurchaseRepository:
    """购买记录数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_purchase(self, user_id: str, course_id: str) -> Optional[PurchaseDB]:
        result = await self.db.execute(
            select(PurchaseDB).where(
                and_(
                    PurchaseDB.user_id == user_id,
                    PurchaseDB.course_id == course_id
                )
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def has_active_purchase(self, user_id: str, course_id: str) -> bool:
        """是否拥有有效（未退款）的购买记录"""
        result = await self.db.execute(
            select(PurchaseDB.id).where(
                and_(
                    PurchaseDB.user_id == user_id,
                    PurchaseDB.course_id == course_id,
                    PurchaseDB.status == PurchaseStatus.COMPLETED.value
                )
            )
        )
        return result.first() is not None

    async def get_user_purchases(self, user_id: str) -> List[PurchaseDB]:
        """获取用户的购买记录"""
        result = await self.db.execute(
            select(PurchaseDB)
            .where(PurchaseDB.user_id == user_id)
            .order_by(desc(PurchaseDB.created_at))
        )
        return list(result.scalars().all())

    async def create_purchase(
        self,
        user_id: str,
        course_id: str,
        provider_payment_id: str,
        amount: Decimal,
        order_id: Optional[int] = None,
        provider_order_id: Optional[str] = None
    ) -> Optional[PurchaseDB]:
        """插入购买记录

        (user_id, course_id) 已存在时回滚SAVEPOINT并返回None
        """
        db_purchase = PurchaseDB(
            id=str(uuid.uuid4()),
            user_id=user_id,
            course_id=course_id,
            order_id=order_id,
            provider_payment_id=provider_payment_id,
            provider_order_id=provider_order_id,
            amount=amount,
            status=PurchaseStatus.COMPLETED.value
        )

        try:
            async with self.db.begin_nested():
                self.db.add(db_purchase)
                await self.db.flush()
        except IntegrityError:
            return None

        await self.db.refresh(db_purchase)
        return db_purchase

    async def reactivate_purchase(
        self,
        purchase_id: str,
        provider_payment_id: str,
        amount: Decimal,
        order_id: Optional[int] = None,
        provider_order_id: Optional[str] = None
    ) -> bool:
        """已退款的购买记录在重新付款后恢复"""
        result = await self.db.execute(
            update(PurchaseDB)
            .where(
                and_(
                    PurchaseDB.id == purchase_id,
                    PurchaseDB.status == PurchaseStatus.REFUNDED.value
                )
            )
            .values(
                status=PurchaseStatus.COMPLETED.value,
                provider_payment_id=provider_payment_id,
                provider_order_id=provider_order_id,
                order_id=order_id,
                amount=amount,
                updated_at=datetime.now(timezone.utc)
            )
        )
        return result.rowcount > 0

    async def mark_order_purchases_refunded(self, order_id: int) -> int:
        """退款后撤销该订单产生的课程访问权限"""
        result = await self.db.execute(
            update(PurchaseDB)
            .where(
                and_(
                    PurchaseDB.order_id == order_id,
                    PurchaseDB.status == PurchaseStatus.COMPLETED.value
                )
            )
            .values(status=PurchaseStatus.REFUNDED.value, updated_at=datetime.now(timezone.utc))
        )
        return result.rowcount

    def to_model(self, db_purchase: PurchaseDB) -> Purchase:
        """转换为Pydantic模型"""
        return Purchase(
            id=db_purchase.id,
            user_id=db_purchase.user_id,
            course_id=db_purchase.course_id,
            order_id=db_purchase.order_id,
            provider_payment_id=db_purchase.provider_payment_id,
            provider_order_id=db_purchase.provider_order_id,
            amount=db_purchase.amount,
            status=db_purchase.status,
            created_at=db_purchase.created_at
        )
