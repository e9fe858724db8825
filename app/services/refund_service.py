"""
退款服务

只支持Stripe：先由渠道确认退款，再条件更新 completed -> refunded。
Razorpay 退款未实现，明确返回不支持。
"""

import logging

from app.api.exceptions import AlreadyProcessedError, NotFoundError, ValidationError
from app.models.order import PaymentMethod, PaymentStatus
from app.models.payment import RefundResult
from app.repositories.order_repository import OrderRepository
from app.repositories.payment_repository import PaymentRepository
from app.repositories.purchase_repository import PurchaseRepository
from app.services.order_service import OrderService
from app.services.payments.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


class RefundService:
    """退款服务"""

    def __init__(
        self,
        order_repo: OrderRepository,
        payment_repo: PaymentRepository,
        purchase_repo: PurchaseRepository,
        order_service: OrderService,
        stripe_gateway: StripeGateway
    ):
        self.order_repo = order_repo
        self.payment_repo = payment_repo
        self.purchase_repo = purchase_repo
        self.order_service = order_service
        self.stripe_gateway = stripe_gateway

    async def refund_order(self, order_id: int, reason: str, user_id: str) -> RefundResult:
        """退款并撤销订单"""
        db_order = await self.order_repo.get_user_order(order_id, user_id)
        if not db_order:
            raise NotFoundError("Order not found")
        order = self.order_repo.to_model(db_order)

        if order.payment_method != PaymentMethod.STRIPE:
            logger.info(f"订单 {order.id} 支付方式 {order.payment_method.value} 不支持退款")
            raise ValidationError("Refund not supported for this payment method")

        if order.payment_status == PaymentStatus.REFUNDED:
            raise AlreadyProcessedError("Order already refunded")
        if order.payment_status != PaymentStatus.COMPLETED:
            raise ValidationError("Only paid orders can be refunded")

        if not order.payment_reference:
            logger.error(f"已支付订单 {order.id} 缺少Stripe会话引用")
            raise ValidationError("No payment found for this order")

        session = await self.stripe_gateway.retrieve_session(order.payment_reference)
        payment_intent_id = session.get("payment_intent")
        if not payment_intent_id:
            raise ValidationError("No payment found for this order")

        # 渠道失败时抛出ProviderError，订单不变
        refund_id = await self.stripe_gateway.create_refund(payment_intent_id, order.id)

        if not await self.order_repo.mark_refunded(order.id, reason):
            # 渠道已退款但订单状态被并发修改，需要人工核对
            logger.error(f"订单 {order.id} 已在Stripe退款 {refund_id}，但状态更新失败")
            raise AlreadyProcessedError("Order already refunded")

        await self.payment_repo.mark_order_payments_refunded(order.id)
        if order.is_course_order():
            revoked = await self.purchase_repo.mark_order_purchases_refunded(order.id)
            logger.info(f"订单 {order.id} 退款后撤销 {revoked} 个课程访问权限")

        await self.order_service.invalidate(order.id)
        logger.info(f"订单 {order.order_number} 退款成功 {refund_id}: {reason}")

        return RefundResult(order_id=order.id, refund_id=refund_id)
