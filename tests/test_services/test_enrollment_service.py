"""
EnrollmentService报名测试
"""

import pytest
from decimal import Decimal

from sqlalchemy import func, select

from app.api.exceptions import AlreadyProcessedError, NotFoundError, ValidationError
from app.models.course import FREE_PAYMENT_SENTINEL
from app.models.database.course_db import PurchaseDB

from tests.factories import OTHER_USER_ID, TEST_USER_ID


async def count_purchases(db_session) -> int:
    return await db_session.scalar(select(func.count()).select_from(PurchaseDB))


@pytest.mark.asyncio
class TestEnrollmentService:
    """EnrollmentService测试类"""

    @pytest.fixture
    def enrollment_service(self, services):
        return services.enrollment_service

    async def test_enroll_free_course(self, enrollment_service, razorpay_gateway, stripe_gateway, db_session):
        outcome = await enrollment_service.enroll_free(TEST_USER_ID, "intro-free")

        assert outcome.enrolled is True
        assert outcome.purchase.provider_payment_id == FREE_PAYMENT_SENTINEL
        assert outcome.purchase.amount == Decimal("0.00")
        assert outcome.purchase.order_id is None
        assert await enrollment_service.has_purchased(TEST_USER_ID, "intro-free") is True
        # 免费报名不经过任何支付渠道
        razorpay_gateway.create_order.assert_not_awaited()
        stripe_gateway.create_checkout_session.assert_not_awaited()

    async def test_enroll_free_twice_keeps_one_row(self, enrollment_service, db_session):
        await enrollment_service.enroll_free(TEST_USER_ID, "intro-free")

        with pytest.raises(AlreadyProcessedError, match="Course already enrolled"):
            await enrollment_service.enroll_free(TEST_USER_ID, "intro-free")

        assert await count_purchases(db_session) == 1

    async def test_enroll_free_is_per_user(self, enrollment_service, db_session):
        await enrollment_service.enroll_free(TEST_USER_ID, "intro-free")
        await enrollment_service.enroll_free(OTHER_USER_ID, "intro-free")

        assert await count_purchases(db_session) == 2

    @pytest.mark.parametrize("course_id,error,message", [
        ("missing", NotFoundError, "Course not found"),
        ("old-course", ValidationError, "Course is not available"),
        ("py-101", ValidationError, "This course is not free. Please purchase to enroll."),
    ])
    async def test_enroll_free_rejections(self, enrollment_service, db_session, course_id, error, message):
        with pytest.raises(error) as exc_info:
            await enrollment_service.enroll_free(TEST_USER_ID, course_id)

        assert exc_info.value.message == message
        assert await count_purchases(db_session) == 0

    async def test_record_purchase_is_idempotent(self, enrollment_service, db_session):
        first = await enrollment_service.record_purchase(TEST_USER_ID, "py-101", "pay_1", Decimal("499.00"))
        second = await enrollment_service.record_purchase(TEST_USER_ID, "py-101", "pay_1", Decimal("499.00"))

        assert first.enrolled is True
        assert second.enrolled is False
        assert second.already_enrolled is True
        assert second.purchase.id == first.purchase.id
        assert await count_purchases(db_session) == 1

    async def test_refunded_purchase_is_restored_on_repurchase(self, enrollment_service, services):
        await enrollment_service.record_purchase(TEST_USER_ID, "py-101", "pay_1", Decimal("499.00"))
        db_purchase = await services.purchase_repo.get_user_purchase(TEST_USER_ID, "py-101")
        db_purchase.status = "refunded"
        await services.purchase_repo.db.flush()
        assert await enrollment_service.has_purchased(TEST_USER_ID, "py-101") is False

        outcome = await enrollment_service.record_purchase(TEST_USER_ID, "py-101", "pay_2", Decimal("499.00"))

        assert outcome.enrolled is True
        assert outcome.purchase.provider_payment_id == "pay_2"
        assert await enrollment_service.has_purchased(TEST_USER_ID, "py-101") is True

    async def test_get_user_purchases(self, enrollment_service):
        await enrollment_service.enroll_free(TEST_USER_ID, "intro-free")
        await enrollment_service.record_purchase(TEST_USER_ID, "py-101", "pay_1", Decimal("499.00"))

        purchases = await enrollment_service.get_user_purchases(TEST_USER_ID)

        assert {p.course_id for p in purchases} == {"intro-free", "py-101"}
        assert any(p.is_free() for p in purchases)
