"""
PaymentSessionService支付会话测试
"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock

from sqlalchemy import func, select

from app.api.exceptions import (
    AlreadyProcessedError, ConfigurationError, ProviderError, ValidationError
)
from app.models.database.order_db import OrderDB
from app.models.order import CheckoutRequest, CourseCheckoutRequest, PaymentStatus
from app.models.payment import PaymentProvider
from app.services.payments.stripe_gateway import StripeGateway

from tests.factories import RAZORPAY_KEY_ID, TEST_USER_ID, checkout_body


async def count_orders(db_session) -> int:
    return await db_session.scalar(select(func.count()).select_from(OrderDB))


@pytest.mark.asyncio
class TestPaymentSessionService:
    """PaymentSessionService测试类"""

    async def test_stripe_checkout(self, services, stripe_gateway):
        request = CheckoutRequest.model_validate(checkout_body())

        result = await services.sessions.checkout_with_stripe(TEST_USER_ID, request)

        assert result.session.provider == PaymentProvider.STRIPE
        response = result.to_response()
        assert response["sessionId"] == f"cs_test_{result.order_id}"
        assert response["sessionUrl"].startswith("https://checkout.stripe.test/")
        stripe_gateway.create_checkout_session.assert_awaited_once()

        order = services.order_repo.to_model(await services.order_repo.get_by_id(result.order_id))
        assert order.payment_reference == f"cs_test_{result.order_id}"
        assert order.payment_status == PaymentStatus.PENDING

    async def test_razorpay_checkout(self, services, razorpay_gateway):
        request = CheckoutRequest.model_validate(checkout_body(payment_method="razorpay"))

        result = await services.sessions.checkout_with_razorpay(TEST_USER_ID, request)

        response = result.to_response()
        assert response["razorpayOrderId"] == f"order_rzp_{result.order_id}"
        assert response["amount"] == 6500
        assert response["keyId"] == RAZORPAY_KEY_ID

    async def test_payment_method_must_match_endpoint(self, services, db_session):
        request = CheckoutRequest.model_validate(checkout_body(payment_method="razorpay"))

        with pytest.raises(ValidationError):
            await services.sessions.checkout_with_stripe(TEST_USER_ID, request)

        assert await count_orders(db_session) == 0

    async def test_unconfigured_provider_creates_no_order(self, services, db_session, monkeypatch):
        monkeypatch.setattr("app.core.config.settings.stripe_secret_key", None)
        services.sessions.stripe_gateway = StripeGateway()
        request = CheckoutRequest.model_validate(checkout_body())

        with pytest.raises(ConfigurationError, match="Stripe is not configured"):
            await services.sessions.checkout_with_stripe(TEST_USER_ID, request)

        assert await count_orders(db_session) == 0

    async def test_provider_failure_leaves_pending_order_for_retry(self, services, stripe_gateway, db_session):
        create_session = stripe_gateway.create_checkout_session
        stripe_gateway.create_checkout_session = AsyncMock(
            side_effect=ProviderError("Failed to create Stripe checkout session")
        )
        request = CheckoutRequest.model_validate(checkout_body())

        with pytest.raises(ProviderError):
            await services.sessions.checkout_with_stripe(TEST_USER_ID, request)

        # 订单已在调用渠道前提交
        await db_session.rollback()
        orders = await services.order_repo.get_user_orders(TEST_USER_ID)
        assert len(orders) == 1
        assert orders[0].payment_status == PaymentStatus.PENDING.value
        assert orders[0].payment_reference is None

        stripe_gateway.create_checkout_session = create_session
        result = await services.sessions.retry_session(orders[0].id, TEST_USER_ID)

        assert result.order_id == orders[0].id
        assert await count_orders(db_session) == 1

    async def test_retry_reuses_open_stripe_session(self, services, stripe_gateway):
        request = CheckoutRequest.model_validate(checkout_body())
        first = await services.sessions.checkout_with_stripe(TEST_USER_ID, request)
        stripe_gateway.retrieve_session.return_value = {
            "id": first.session.reference,
            "status": "open",
            "payment_status": "unpaid",
            "amount_total": 6500,
            "currency": "usd",
            "url": first.session.url,
            "metadata": {"orderId": str(first.order_id)},
        }

        retried = await services.sessions.retry_session(first.order_id, TEST_USER_ID)

        assert retried.session.reference == first.session.reference
        assert stripe_gateway.create_checkout_session.await_count == 1

    async def test_retry_creates_new_session_when_expired(self, services, stripe_gateway):
        request = CheckoutRequest.model_validate(checkout_body())
        first = await services.sessions.checkout_with_stripe(TEST_USER_ID, request)
        stripe_gateway.retrieve_session.return_value = {
            "id": first.session.reference,
            "status": "expired",
            "url": None,
            "metadata": {},
        }

        await services.sessions.retry_session(first.order_id, TEST_USER_ID)

        assert stripe_gateway.create_checkout_session.await_count == 2

    async def test_retry_rejects_paid_order(self, services):
        request = CheckoutRequest.model_validate(checkout_body())
        result = await services.sessions.checkout_with_stripe(TEST_USER_ID, request)
        await services.order_repo.mark_paid(result.order_id)

        with pytest.raises(AlreadyProcessedError):
            await services.sessions.retry_session(result.order_id, TEST_USER_ID)

    async def test_retry_rejects_cancelled_order(self, services, stripe_gateway):
        request = CheckoutRequest.model_validate(checkout_body())
        result = await services.sessions.checkout_with_stripe(TEST_USER_ID, request)
        await services.order_service.cancel_order(result.order_id, TEST_USER_ID)

        with pytest.raises(AlreadyProcessedError, match="Order already cancelled"):
            await services.sessions.retry_session(result.order_id, TEST_USER_ID)

        assert stripe_gateway.create_checkout_session.await_count == 1

    async def test_course_checkout_records_payment_order(self, services, razorpay_gateway):
        result = await services.sessions.checkout_course(
            TEST_USER_ID, CourseCheckoutRequest(course_id="py-101")
        )

        assert result.to_response()["amount"] == 49900
        _, kwargs = razorpay_gateway.create_order.await_args
        assert kwargs["notes"] == {"courseId": "py-101"}

        payment_order = await services.payment_order_repo.get_by_provider_order_id(result.session.reference)
        assert payment_order.order_id == result.order_id
        assert payment_order.course_id == "py-101"
        assert payment_order.amount == Decimal("499.00")
        assert payment_order.status == "pending"
