"""
支付会话服务

先提交待支付订单，再调用支付渠道。渠道失败时订单保持 pending/pending，
调用方可以针对同一订单重试，不会产生重复订单。
"""

import logging
from typing import Optional

from app.api.exceptions import AlreadyProcessedError, ValidationError
from app.models.order import (
    Order, CheckoutRequest, CourseCheckoutRequest, OrderStatus, PaymentMethod, PaymentStatus
)
from app.models.payment import CheckoutSessionResult, PaymentProvider, ProviderSession
from app.repositories.order_repository import OrderRepository
from app.repositories.payment_repository import PaymentOrderRepository
from app.services.order_service import OrderService
from app.services.payments.stripe_gateway import StripeGateway
from app.services.payments.razorpay_gateway import RazorpayGateway

logger = logging.getLogger(__name__)


class PaymentSessionService:
    """支付会话发起服务"""

    def __init__(
        self,
        order_repo: OrderRepository,
        payment_order_repo: PaymentOrderRepository,
        order_service: OrderService,
        stripe_gateway: StripeGateway,
        razorpay_gateway: RazorpayGateway
    ):
        self.order_repo = order_repo
        self.payment_order_repo = payment_order_repo
        self.order_service = order_service
        self.stripe_gateway = stripe_gateway
        self.razorpay_gateway = razorpay_gateway

    async def checkout_with_stripe(self, user_id: str, request: CheckoutRequest) -> CheckoutSessionResult:
        """创建订单并发起Stripe收银台会话"""
        if request.payment_method != PaymentMethod.STRIPE:
            raise ValidationError("paymentMethod must be 'stripe' for this endpoint")
        # 未配置时不创建订单
        self.stripe_gateway.require_configured()

        order = await self.order_service.create_checkout_order(user_id, request)
        await self._commit_pending(order)
        return await self.start_session(order)

    async def checkout_with_razorpay(self, user_id: str, request: CheckoutRequest) -> CheckoutSessionResult:
        """创建订单并发起Razorpay订单"""
        if request.payment_method != PaymentMethod.RAZORPAY:
            raise ValidationError("paymentMethod must be 'razorpay' for this endpoint")
        self.razorpay_gateway.require_configured()

        order = await self.order_service.create_checkout_order(user_id, request)
        await self._commit_pending(order)
        return await self.start_session(order)

    async def checkout_course(self, user_id: str, request: CourseCheckoutRequest) -> CheckoutSessionResult:
        """课程下单并发起Razorpay订单"""
        self.razorpay_gateway.require_configured()

        order = await self.order_service.create_course_order(user_id, request)
        await self._commit_pending(order)
        return await self.start_session(order)

    async def _commit_pending(self, order: Order) -> None:
        if order.total <= 0:
            raise ValidationError("Order total must be greater than zero")
        await self.order_repo.commit()

    async def start_session(self, order: Order) -> CheckoutSessionResult:
        """为待支付订单创建渠道会话并记录渠道引用"""
        if order.payment_method == PaymentMethod.STRIPE:
            session = await self.stripe_gateway.create_checkout_session(order)
            key_id = None
        elif order.payment_method == PaymentMethod.RAZORPAY:
            session = await self.razorpay_gateway.create_order(
                order,
                notes={"courseId": ",".join(order.course_ids)} if order.is_course_order() else None
            )
            key_id = self.razorpay_gateway.key_id
        else:
            raise ValidationError(f"Online payment is not available for '{order.payment_method.value}' orders")

        if not await self.order_repo.attach_payment_reference(order.id, session.reference):
            # 渠道调用期间订单已被支付
            raise AlreadyProcessedError("Order already paid")

        if order.is_course_order():
            await self.payment_order_repo.create_payment_order(
                user_id=order.user_id,
                order_id=order.id,
                course_id=order.course_ids[0] if order.course_ids else None,
                provider=session.provider.value,
                provider_order_id=session.reference,
                amount=order.total,
                currency=session.currency
            )

        await self.order_service.invalidate(order.id)
        logger.info(f"订单 {order.order_number} 已关联渠道会话 {session.provider.value}:{session.reference}")

        return CheckoutSessionResult(
            order_id=order.id,
            order_number=order.order_number,
            session=session,
            key_id=key_id
        )

    async def retry_session(self, order_id: int, user_id: str) -> CheckoutSessionResult:
        """针对仍待支付的订单重新获取支付会话"""
        order = await self.order_service.get_order(order_id, user_id, use_cache=False)

        if order.status == OrderStatus.CANCELLED:
            raise AlreadyProcessedError("Order already cancelled")
        if order.payment_status != PaymentStatus.PENDING:
            raise AlreadyProcessedError(f"Order already {order.payment_status.value}")
        if order.status != OrderStatus.PENDING:
            raise ValidationError(f"Order is {order.status.value}")

        reusable = await self._reusable_session(order)
        if reusable:
            logger.info(f"订单 {order.order_number} 复用渠道会话 {reusable.reference}")
            return CheckoutSessionResult(
                order_id=order.id,
                order_number=order.order_number,
                session=reusable,
                key_id=self.razorpay_gateway.key_id if reusable.provider == PaymentProvider.RAZORPAY else None
            )

        return await self.start_session(order)

    async def _reusable_session(self, order: Order) -> Optional[ProviderSession]:
        """已有的Stripe会话仍为open、或已有Razorpay订单时直接复用"""
        if not order.payment_reference:
            return None

        if order.payment_method == PaymentMethod.RAZORPAY:
            self.razorpay_gateway.require_configured()
            return self.razorpay_gateway.existing_session(order)

        if order.payment_method == PaymentMethod.STRIPE:
            session = await self.stripe_gateway.retrieve_session(order.payment_reference)
            if session.get("status") == "open" and session.get("url"):
                return ProviderSession(
                    provider=PaymentProvider.STRIPE,
                    reference=session["id"],
                    url=session["url"],
                    amount_minor=session.get("amount_total") or 0,
                    currency=session.get("currency") or self.stripe_gateway.currency,
                    status=session.get("status")
                )

        return None
