"""
Stripe 网关

封装 Checkout Session 的创建与查询、退款和 webhook 验签。
SDK 是同步的，所有网络调用都放到线程中执行。
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import stripe
import structlog

from app.api.exceptions import ConfigurationError, InvalidSignatureError, ProviderError
from app.core.config import settings
from app.models.order import Order
from app.models.payment import PaymentProvider, ProviderSession, StripeWebhookEvent
from app.services.price_calculator_service import to_minor_units

logger = structlog.get_logger()


class StripeGateway:
    """Stripe Checkout 网关"""

    provider = PaymentProvider.STRIPE

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        currency: Optional[str] = None,
        frontend_url: Optional[str] = None
    ):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._currency = currency
        self._frontend_url = frontend_url

    # 未显式传入时读取全局配置，便于测试时修改settings
    @property
    def secret_key(self) -> Optional[str]:
        return self._secret_key or settings.stripe_secret_key

    @property
    def webhook_secret(self) -> Optional[str]:
        return self._webhook_secret or settings.stripe_webhook_secret

    @property
    def currency(self) -> str:
        return (self._currency or settings.stripe_currency).lower()

    @property
    def frontend_url(self) -> str:
        return (self._frontend_url or settings.frontend_url).rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def require_configured(self) -> str:
        if not self.configured:
            raise ConfigurationError("Stripe is not configured")
        return self.secret_key

    def build_line_items(self, order: Order) -> List[Dict[str, Any]]:
        """订单项按下单时的快照价格生成，税费和运费单列"""
        line_items = []
        for item in order.items:
            product_data: Dict[str, Any] = {"name": item.item_name}
            if item.item_image:
                product_data["images"] = [item.item_image]
            line_items.append({
                "price_data": {
                    "currency": self.currency,
                    "product_data": product_data,
                    "unit_amount": to_minor_units(item.unit_price),
                },
                "quantity": item.quantity,
            })

        for name, amount in (("Tax", order.tax), ("Shipping", order.shipping)):
            if amount > 0:
                line_items.append({
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": name},
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                })

        return line_items

    async def create_checkout_session(self, order: Order) -> ProviderSession:
        """创建托管收银台会话"""
        api_key = self.require_configured()

        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": self.build_line_items(order),
            "success_url": (
                f"{self.frontend_url}/shop/order-success"
                f"?session_id={{CHECKOUT_SESSION_ID}}&order_id={order.id}"
            ),
            "cancel_url": f"{self.frontend_url}/shop/cart?order_id={order.id}",
            "client_reference_id": str(order.id),
            "metadata": {
                "orderId": str(order.id),
                "orderNumber": order.order_number,
            },
        }
        if order.contact_email:
            params["customer_email"] = order.contact_email

        try:
            if order.discount > 0:
                coupon = await asyncio.to_thread(
                    stripe.Coupon.create,
                    api_key=api_key,
                    amount_off=to_minor_units(order.discount),
                    currency=self.currency,
                    duration="once",
                    name=order.applied_coupon_code or "Discount",
                )
                params["discounts"] = [{"coupon": coupon.id}]

            session = await asyncio.to_thread(
                stripe.checkout.Session.create, api_key=api_key, **params
            )
        except stripe.StripeError as e:
            logger.error("Stripe创建会话失败", order_id=order.id, error=str(e))
            raise ProviderError("Failed to create Stripe checkout session")

        logger.info("Stripe会话已创建", order_id=order.id, session_id=session.id)
        return ProviderSession(
            provider=self.provider,
            reference=session.id,
            url=session.url,
            amount_minor=session.amount_total or to_minor_units(order.total),
            currency=self.currency,
            status=session.status
        )

    async def retrieve_session(self, session_id: str) -> Dict[str, Any]:
        """查询会话，返回普通字典"""
        api_key = self.require_configured()

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve, session_id, api_key=api_key
            )
        except stripe.StripeError as e:
            logger.error("Stripe查询会话失败", session_id=session_id, error=str(e))
            raise ProviderError("Failed to retrieve Stripe checkout session")

        return {
            "id": session.id,
            "status": session.get("status"),
            "payment_status": session.get("payment_status"),
            "amount_total": session.get("amount_total"),
            "currency": session.get("currency"),
            "payment_intent": session.get("payment_intent"),
            "url": session.get("url"),
            "metadata": dict(session.get("metadata") or {}),
        }

    async def create_refund(self, payment_intent_id: str, order_id: int) -> str:
        """对支付意图全额退款，返回退款ID"""
        api_key = self.require_configured()

        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                api_key=api_key,
                payment_intent=payment_intent_id,
                metadata={"orderId": str(order_id)},
            )
        except stripe.StripeError as e:
            logger.error("Stripe退款失败", order_id=order_id, error=str(e))
            raise ProviderError("Stripe refund failed")

        # 只有succeeded才算渠道确认，pending等状态不改动订单
        if refund.status != "succeeded":
            logger.error("Stripe退款未成功", order_id=order_id, refund_id=refund.id, refund_status=refund.status)
            raise ProviderError(f"Stripe refund {refund.status}")

        logger.info("Stripe退款成功", order_id=order_id, refund_id=refund.id)
        return refund.id

    def construct_event(self, payload: bytes, signature: Optional[str]) -> StripeWebhookEvent:
        """验签并解析webhook事件

        未配置签名密钥时默认拒绝；仅在非生产环境显式开启后才接受未签名事件
        """
        if not self.webhook_secret:
            if not settings.unsigned_webhooks_allowed:
                logger.error("Stripe webhook密钥未配置，拒绝事件")
                raise ConfigurationError("Stripe webhook secret is not configured")

            logger.warning("未验签处理Stripe webhook（仅限开发环境）")
            try:
                data = json.loads(payload)
            except ValueError:
                raise InvalidSignatureError("Invalid webhook payload")
            if not isinstance(data, dict):
                raise InvalidSignatureError("Invalid webhook payload")
            return StripeWebhookEvent.from_payload(data, verified=False)

        if not signature:
            raise InvalidSignatureError("Missing Stripe signature")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            logger.warning("Stripe webhook内容无法解析")
            raise InvalidSignatureError("Invalid webhook payload")
        except stripe.SignatureVerificationError:
            logger.warning("Stripe webhook签名校验失败")
            raise InvalidSignatureError("Invalid webhook signature")

        return StripeWebhookEvent.from_payload(event, verified=True)


# 全局网关实例
stripe_gateway = StripeGateway()
