"""
支付验证服务

回跳页确认与Stripe webhook两个入口最终都走 _complete_payment：
条件更新 pending -> completed 成功的那一个请求负责写支付记录和报名记录，
其余请求看到影响行数为0，按已处理返回。
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from app.api.exceptions import (
    AlreadyProcessedError, ConflictError, InvalidSignatureError, NotFoundError, ValidationError
)
from app.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from app.models.payment import PaymentProvider, StripeWebhookEvent, VerificationOutcome
from app.repositories.order_repository import OrderRepository
from app.repositories.payment_repository import PaymentRepository, PaymentOrderRepository
from app.services.common_cache import SimpleCache, webhook_event_cache
from app.services.enrollment_service import EnrollmentService
from app.services.notification_service import PaymentNotifier
from app.services.order_service import OrderService
from app.services.payments.stripe_gateway import StripeGateway
from app.services.payments.razorpay_gateway import RazorpayGateway
from app.services.price_calculator_service import to_minor_units

logger = logging.getLogger(__name__)

STRIPE_PAID_EVENTS = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
})
STRIPE_FAILED_EVENT = "payment_intent.payment_failed"
WEBHOOK_EVENT_TTL = 86400  # 24小时


class PaymentVerificationService:
    """支付验证服务"""

    def __init__(
        self,
        order_repo: OrderRepository,
        payment_repo: PaymentRepository,
        payment_order_repo: PaymentOrderRepository,
        order_service: OrderService,
        enrollment_service: EnrollmentService,
        stripe_gateway: StripeGateway,
        razorpay_gateway: RazorpayGateway,
        notifier: PaymentNotifier,
        event_cache: Optional[SimpleCache] = None
    ):
        self.order_repo = order_repo
        self.payment_repo = payment_repo
        self.payment_order_repo = payment_order_repo
        self.order_service = order_service
        self.enrollment_service = enrollment_service
        self.stripe_gateway = stripe_gateway
        self.razorpay_gateway = razorpay_gateway
        self.notifier = notifier
        self.event_cache = event_cache or webhook_event_cache

    async def _load_user_order(self, order_id: int, user_id: str) -> Order:
        db_order = await self.order_repo.get_user_order(order_id, user_id)
        if not db_order:
            raise NotFoundError("Order not found")
        return self.order_repo.to_model(db_order)

    @staticmethod
    def _already_settled(order: Order) -> Optional[VerificationOutcome]:
        """已完成时幂等返回，已退款/失败时拒绝"""
        if order.payment_status == PaymentStatus.COMPLETED:
            return VerificationOutcome(order_id=order.id, already_processed=True)
        if order.status == OrderStatus.CANCELLED:
            raise AlreadyProcessedError("Order already cancelled")
        if order.payment_status != PaymentStatus.PENDING:
            raise AlreadyProcessedError(f"Order already {order.payment_status.value}")
        return None

    async def verify_stripe_payment(self, order_id: int, session_id: str, user_id: str) -> VerificationOutcome:
        """回跳页确认Stripe支付"""
        order = await self._load_user_order(order_id, user_id)
        if order.payment_method != PaymentMethod.STRIPE:
            raise ValidationError("Order was not placed with Stripe")

        settled = self._already_settled(order)
        if settled:
            return settled

        session = await self.stripe_gateway.retrieve_session(session_id)
        return await self._complete_stripe_session(order, session)

    async def _complete_stripe_session(self, order: Order, session: Dict[str, Any]) -> VerificationOutcome:
        metadata = session.get("metadata") or {}
        if str(metadata.get("orderId")) != str(order.id):
            logger.warning(f"Stripe会话 {session.get('id')} 不属于订单 {order.id}")
            raise ValidationError("Checkout session does not belong to this order")

        if session.get("payment_status") != "paid":
            logger.info(f"订单 {order.id} 的Stripe会话未支付: {session.get('payment_status')}")
            raise ValidationError("Payment not completed")

        amount_total = session.get("amount_total")
        if amount_total is not None and amount_total != to_minor_units(order.total):
            logger.error(
                f"订单 {order.id} 金额不一致: 会话 {amount_total}, 订单 {to_minor_units(order.total)}"
            )
            raise ValidationError("Paid amount does not match order total")

        return await self._complete_payment(
            order,
            provider=PaymentProvider.STRIPE,
            provider_payment_id=session.get("payment_intent") or session["id"],
            provider_order_id=session["id"],
            currency=(session.get("currency") or self.stripe_gateway.currency).upper(),
            provider_metadata=session
        )

    async def verify_razorpay_payment(
        self,
        order_id: int,
        razorpay_order_id: str,
        razorpay_payment_id: str,
        razorpay_signature: str,
        user_id: str
    ) -> VerificationOutcome:
        """校验Razorpay签名，签名错误时不做任何写入"""
        if not self.razorpay_gateway.verify_signature(
            razorpay_order_id, razorpay_payment_id, razorpay_signature
        ):
            raise InvalidSignatureError("Invalid payment signature")

        order = await self._load_user_order(order_id, user_id)
        if order.payment_method != PaymentMethod.RAZORPAY:
            raise ValidationError("Order was not placed with Razorpay")
        if order.payment_reference != razorpay_order_id:
            logger.warning(f"Razorpay订单 {razorpay_order_id} 与订单 {order.id} 的渠道引用不符")
            raise ValidationError("Payment does not belong to this order")

        settled = self._already_settled(order)
        if settled:
            return settled

        return await self._complete_payment(
            order,
            provider=PaymentProvider.RAZORPAY,
            provider_payment_id=razorpay_payment_id,
            provider_order_id=razorpay_order_id,
            currency=self.razorpay_gateway.currency,
            provider_metadata={
                "razorpay_order_id": razorpay_order_id,
                "razorpay_payment_id": razorpay_payment_id,
            }
        )

    async def handle_stripe_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """处理Stripe webhook，验签失败直接拒绝"""
        event = self.stripe_gateway.construct_event(payload, signature)

        if event.id and await self.event_cache.exists(event.id):
            logger.info(f"Stripe事件 {event.id} 已处理，跳过")
            return {"received": True, "duplicate": True}

        if event.type in STRIPE_PAID_EVENTS:
            await self._handle_session_paid(event)
        elif event.type == STRIPE_FAILED_EVENT:
            logger.warning(
                f"Stripe支付失败事件 {event.id}: payment_intent={event.data_object.get('id')}, "
                f"metadata={event.data_object.get('metadata')}"
            )
        else:
            logger.info(f"忽略Stripe事件类型 {event.type}")

        if event.id:
            await self.event_cache.set(event.id, {"type": event.type}, ttl=WEBHOOK_EVENT_TTL)

        return {"received": True}

    async def _handle_session_paid(self, event: StripeWebhookEvent) -> None:
        session = event.data_object
        metadata = session.get("metadata") or {}
        raw_order_id = metadata.get("orderId")

        if not raw_order_id or not str(raw_order_id).isdigit():
            logger.warning(f"Stripe事件 {event.id} 缺少orderId元数据")
            return

        if session.get("payment_status") != "paid":
            logger.info(f"Stripe事件 {event.id} 会话尚未支付: {session.get('payment_status')}")
            return

        db_order = await self.order_repo.get_by_id(int(raw_order_id))
        if not db_order:
            logger.warning(f"Stripe事件 {event.id} 指向不存在的订单 {raw_order_id}")
            return

        order = self.order_repo.to_model(db_order)
        if order.status == OrderStatus.CANCELLED:
            # 钱已到账但订单已取消，只能人工退款
            logger.error(f"Stripe事件 {event.id} 对已取消订单 {order.id} 付款成功，需要人工退款")
            return
        if order.payment_status != PaymentStatus.PENDING:
            logger.info(f"订单 {order.id} 支付状态为 {order.payment_status.value}，webhook无需处理")
            return

        try:
            await self._complete_stripe_session(order, session)
        except (ValidationError, AlreadyProcessedError) as e:
            # 应答Stripe避免无意义重试，订单状态不变
            logger.error(f"Stripe事件 {event.id} 无法完成订单 {order.id}: {e.message}")

    async def _complete_payment(
        self,
        order: Order,
        provider: PaymentProvider,
        provider_payment_id: str,
        provider_order_id: Optional[str],
        currency: str,
        provider_metadata: Optional[Dict[str, Any]] = None
    ) -> VerificationOutcome:
        """条件更新订单并写入支付记录"""
        if not await self.order_repo.mark_paid(order.id, reference=provider_order_id):
            current = await self.order_repo.get_by_id(order.id)
            if current and current.payment_status == PaymentStatus.COMPLETED.value:
                logger.info(f"订单 {order.id} 已被其他请求完成")
                return VerificationOutcome(order_id=order.id, already_processed=True)
            if current and current.status == OrderStatus.CANCELLED.value:
                raise AlreadyProcessedError("Order already cancelled")
            raise AlreadyProcessedError(
                f"Order already {current.payment_status if current else 'processed'}"
            )

        db_payment = await self.payment_repo.create_payment(
            order_id=order.id,
            user_id=order.user_id,
            provider=provider.value,
            provider_payment_id=provider_payment_id,
            provider_order_id=provider_order_id,
            amount=Decimal(order.total),
            currency=currency,
            provider_metadata=provider_metadata
        )
        if db_payment is None:
            # 同一笔渠道支付不能对应两个订单，整个事务回滚
            logger.error(f"渠道支付 {provider.value}:{provider_payment_id} 已记录在其他订单")
            raise ConflictError("Payment already recorded")

        enrolled = []
        if order.is_course_order():
            outcomes = await self.enrollment_service.record_paid_order(
                order, provider_payment_id, provider_order_id
            )
            enrolled = [outcome.course_id for outcome in outcomes if outcome.enrolled]
            if provider_order_id:
                await self.payment_order_repo.mark_paid(provider_order_id, provider_payment_id)

        await self.order_repo.commit()
        await self.order_service.invalidate(order.id)

        logger.info(
            f"订单 {order.order_number} 支付成功: {provider.value} {provider_payment_id}, 金额 {order.total}"
        )

        paid_order = self.order_repo.to_model(await self.order_repo.get_by_id(order.id))
        self.notifier.notify_payment_success(paid_order)

        return VerificationOutcome(
            order_id=order.id,
            payment_id=db_payment.id,
            enrolled_course_ids=enrolled
        )
