"""
RefundService退款测试
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from app.api.exceptions import AlreadyProcessedError, NotFoundError, ProviderError, ValidationError
from app.models.order import CheckoutRequest, CourseCheckoutRequest, OrderStatus, PaymentStatus
from app.services.payments.razorpay_gateway import compute_signature

from tests.factories import (
    OTHER_USER_ID, RAZORPAY_KEY_SECRET, TEST_USER_ID, checkout_body, paid_stripe_session
)


@pytest.mark.asyncio
class TestRefundService:
    """RefundService测试类"""

    @pytest_asyncio.fixture
    async def paid_stripe_order(self, services, stripe_gateway):
        result = await services.sessions.checkout_with_stripe(
            TEST_USER_ID, CheckoutRequest.model_validate(checkout_body())
        )
        order = await services.order_service.get_order(result.order_id, TEST_USER_ID, use_cache=False)
        stripe_gateway.retrieve_session.return_value = paid_stripe_session(order)
        await services.verification.verify_stripe_payment(order.id, result.session.reference, TEST_USER_ID)
        return order

    @pytest_asyncio.fixture
    async def paid_course_order(self, services):
        result = await services.sessions.checkout_course(TEST_USER_ID, CourseCheckoutRequest(course_id="py-101"))
        signature = compute_signature(RAZORPAY_KEY_SECRET, result.session.reference, "pay_test_1")
        await services.verification.verify_razorpay_payment(
            result.order_id, result.session.reference, "pay_test_1", signature, TEST_USER_ID
        )
        return result

    async def _reload(self, services, order_id):
        return services.order_repo.to_model(await services.order_repo.get_by_id(order_id))

    async def test_stripe_refund(self, services, stripe_gateway, paid_stripe_order):
        result = await services.refunds.refund_order(paid_stripe_order.id, "Item arrived damaged", TEST_USER_ID)

        assert result.refund_id == "re_test_1"
        stripe_gateway.create_refund.assert_awaited_once_with("pi_test_1", paid_stripe_order.id)

        order = await self._reload(services, paid_stripe_order.id)
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.status == OrderStatus.REFUNDED
        assert order.notes == "Item arrived damaged"

        payments = await services.payment_repo.get_order_payments(order.id)
        assert [p.status for p in payments] == ["refunded"]

    async def test_second_refund_rejected(self, services, stripe_gateway, paid_stripe_order):
        await services.refunds.refund_order(paid_stripe_order.id, "first", TEST_USER_ID)

        with pytest.raises(AlreadyProcessedError):
            await services.refunds.refund_order(paid_stripe_order.id, "second", TEST_USER_ID)

        assert stripe_gateway.create_refund.await_count == 1

    async def test_provider_failure_leaves_order_unchanged(self, services, stripe_gateway, paid_stripe_order):
        stripe_gateway.create_refund = AsyncMock(side_effect=ProviderError("Stripe refund failed"))

        with pytest.raises(ProviderError):
            await services.refunds.refund_order(paid_stripe_order.id, "damaged", TEST_USER_ID)

        order = await self._reload(services, paid_stripe_order.id)
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.status == OrderStatus.PROCESSING

    async def test_razorpay_refund_not_supported(self, services, stripe_gateway, paid_course_order):
        with pytest.raises(ValidationError, match="Refund not supported for this payment method"):
            await services.refunds.refund_order(paid_course_order.order_id, "changed my mind", TEST_USER_ID)

        order = await self._reload(services, paid_course_order.order_id)
        assert order.payment_status == PaymentStatus.COMPLETED
        assert await services.enrollment_service.has_purchased(TEST_USER_ID, "py-101") is True
        stripe_gateway.create_refund.assert_not_awaited()

    async def test_unpaid_order_cannot_be_refunded(self, services, stripe_gateway):
        result = await services.sessions.checkout_with_stripe(
            TEST_USER_ID, CheckoutRequest.model_validate(checkout_body())
        )

        with pytest.raises(ValidationError, match="Only paid orders can be refunded"):
            await services.refunds.refund_order(result.order_id, "never paid", TEST_USER_ID)

        stripe_gateway.create_refund.assert_not_awaited()

    async def test_other_users_order_not_found(self, services, paid_stripe_order):
        with pytest.raises(NotFoundError):
            await services.refunds.refund_order(paid_stripe_order.id, "not mine", OTHER_USER_ID)

    async def test_missing_payment_intent(self, services, stripe_gateway, paid_stripe_order):
        stripe_gateway.retrieve_session.return_value = paid_stripe_session(
            paid_stripe_order, payment_intent=None
        )

        with pytest.raises(ValidationError, match="No payment found for this order"):
            await services.refunds.refund_order(paid_stripe_order.id, "damaged", TEST_USER_ID)

    async def test_paid_order_without_session_reference(self, services, stripe_gateway, paid_stripe_order):
        db_order = await services.order_repo.get_by_id(paid_stripe_order.id)
        db_order.payment_reference = None
        await services.order_repo.db.flush()

        with pytest.raises(ValidationError, match="No payment found for this order"):
            await services.refunds.refund_order(paid_stripe_order.id, "damaged", TEST_USER_ID)

        assert stripe_gateway.retrieve_session.await_count == 1
        stripe_gateway.create_refund.assert_not_awaited()
        order = await self._reload(services, paid_stripe_order.id)
        assert order.payment_status == PaymentStatus.COMPLETED
