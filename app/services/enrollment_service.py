"""
课程报名服务

付款成功的课程订单与免费课程都落到同一条写入路径，
(user_id, course_id) 唯一约束保证重复报名只留一条记录
"""

import logging
from decimal import Decimal
from typing import List, Optional

from app.api.exceptions import AlreadyProcessedError, NotFoundError, ValidationError
from app.models.course import (
    CourseStatus, EnrollmentOutcome, FREE_PAYMENT_SENTINEL, Purchase, PurchaseStatus
)
from app.models.order import Order
from app.repositories.course_repository import CourseRepository
from app.repositories.purchase_repository import PurchaseRepository

logger = logging.getLogger(__name__)


class EnrollmentService:
    """报名记录服务"""

    def __init__(self, course_repo: CourseRepository, purchase_repo: PurchaseRepository):
        self.course_repo = course_repo
        self.purchase_repo = purchase_repo

    async def record_purchase(
        self,
        user_id: str,
        course_id: str,
        provider_payment_id: str,
        amount: Decimal,
        order_id: Optional[int] = None,
        provider_order_id: Optional[str] = None
    ) -> EnrollmentOutcome:
        """写入购买记录，已报名时返回already_enrolled而不是抛异常"""
        db_purchase = await self.purchase_repo.create_purchase(
            user_id=user_id,
            course_id=course_id,
            provider_payment_id=provider_payment_id,
            amount=amount,
            order_id=order_id,
            provider_order_id=provider_order_id
        )
        if db_purchase:
            logger.info(f"用户 {user_id} 报名课程 {course_id} 成功")
            return EnrollmentOutcome(
                course_id=course_id,
                enrolled=True,
                purchase=self.purchase_repo.to_model(db_purchase)
            )

        existing = await self.purchase_repo.get_user_purchase(user_id, course_id)
        if existing and existing.status == PurchaseStatus.REFUNDED.value:
            # 退款后重新购买
            await self.purchase_repo.reactivate_purchase(
                existing.id,
                provider_payment_id=provider_payment_id,
                amount=amount,
                order_id=order_id,
                provider_order_id=provider_order_id
            )
            existing = await self.purchase_repo.get_user_purchase(user_id, course_id)
            logger.info(f"用户 {user_id} 重新获得课程 {course_id} 的访问权限")
            return EnrollmentOutcome(
                course_id=course_id,
                enrolled=True,
                purchase=self.purchase_repo.to_model(existing)
            )

        logger.info(f"用户 {user_id} 已报名课程 {course_id}，跳过")
        return EnrollmentOutcome(
            course_id=course_id,
            enrolled=False,
            already_enrolled=True,
            purchase=self.purchase_repo.to_model(existing) if existing else None
        )

    async def record_paid_order(
        self,
        order: Order,
        provider_payment_id: str,
        provider_order_id: Optional[str] = None
    ) -> List[EnrollmentOutcome]:
        """已支付的课程订单逐个课程写入购买记录"""
        outcomes = []
        for item in order.items:
            if not item.course_id:
                continue
            outcomes.append(await self.record_purchase(
                user_id=order.user_id,
                course_id=item.course_id,
                provider_payment_id=provider_payment_id,
                amount=item.line_total,
                order_id=order.id,
                provider_order_id=provider_order_id
            ))
        return outcomes

    async def enroll_free(self, user_id: str, course_id: str) -> EnrollmentOutcome:
        """免费课程报名，不经过任何支付渠道"""
        db_course = await self.course_repo.get_by_course_id(course_id)
        if not db_course:
            raise NotFoundError("Course not found")

        course = self.course_repo.to_model(db_course)
        if course.status != CourseStatus.ACTIVE:
            raise ValidationError("Course is not available")
        if not course.free:
            raise ValidationError("This course is not free. Please purchase to enroll.")

        if await self.purchase_repo.get_user_purchase(user_id, course_id):
            raise AlreadyProcessedError("Course already enrolled")

        outcome = await self.record_purchase(
            user_id=user_id,
            course_id=course_id,
            provider_payment_id=FREE_PAYMENT_SENTINEL,
            amount=Decimal("0.00")
        )
        if outcome.already_enrolled:
            # 并发请求先一步写入
            raise AlreadyProcessedError("Course already enrolled")

        return outcome

    async def has_purchased(self, user_id: str, course_id: str) -> bool:
        """内容访问校验"""
        return await self.purchase_repo.has_active_purchase(user_id, course_id)

    async def get_user_purchases(self, user_id: str) -> List[Purchase]:
        db_purchases = await self.purchase_repo.get_user_purchases(user_id)
        return [self.purchase_repo.to_model(p) for p in db_purchases]
