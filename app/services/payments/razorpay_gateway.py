"""
Razorpay 网关

创建渠道订单（金额为派萨整数），本地校验 order_id|payment_id 的 HMAC-SHA256 签名
"""

import asyncio
import hashlib
import hmac
from typing import Any, Dict, Optional

import structlog

from app.api.exceptions import ConfigurationError, ProviderError
from app.core.config import settings
from app.models.order import Order
from app.models.payment import PaymentProvider, ProviderSession
from app.services.price_calculator_service import to_minor_units

logger = structlog.get_logger()


def compute_signature(secret: str, provider_order_id: str, provider_payment_id: str) -> str:
    """HMAC-SHA256(order_id|payment_id) 的十六进制摘要"""
    message = f"{provider_order_id}|{provider_payment_id}"
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


class RazorpayGateway:
    """Razorpay 网关"""

    provider = PaymentProvider.RAZORPAY

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        currency: Optional[str] = None
    ):
        self._key_id = key_id
        self._key_secret = key_secret
        self._currency = currency

    @property
    def key_id(self) -> Optional[str]:
        return self._key_id or settings.razorpay_key_id

    @property
    def key_secret(self) -> Optional[str]:
        return self._key_secret or settings.razorpay_key_secret

    @property
    def currency(self) -> str:
        return (self._currency or settings.razorpay_currency).upper()

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def require_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("Razorpay is not configured")

    def _client(self):
        import razorpay
        return razorpay.Client(auth=(self.key_id, self.key_secret))

    async def create_order(self, order: Order, notes: Optional[Dict[str, Any]] = None) -> ProviderSession:
        """创建渠道订单，receipt 为本地订单号"""
        self.require_configured()

        amount_minor = to_minor_units(order.total)
        data = {
            "amount": amount_minor,
            "currency": self.currency,
            "receipt": order.order_number,
            "notes": {
                "orderId": str(order.id),
                "orderNumber": order.order_number,
                **(notes or {}),
            },
        }

        try:
            provider_order = await asyncio.to_thread(self._client().order.create, data=data)
        except Exception as e:
            # SDK 的异常类型分散在 razorpay.errors 与 requests 中
            logger.error("Razorpay创建订单失败", order_id=order.id, error=str(e))
            raise ProviderError("Failed to create Razorpay order")

        logger.info("Razorpay订单已创建", order_id=order.id, razorpay_order_id=provider_order["id"])
        return ProviderSession(
            provider=self.provider,
            reference=provider_order["id"],
            amount_minor=provider_order.get("amount", amount_minor),
            currency=provider_order.get("currency", self.currency),
            status=provider_order.get("status")
        )

    def existing_session(self, order: Order) -> ProviderSession:
        """复用订单上已保存的渠道订单"""
        return ProviderSession(
            provider=self.provider,
            reference=order.payment_reference,
            amount_minor=to_minor_units(order.total),
            currency=self.currency,
            status="created"
        )

    def verify_signature(self, provider_order_id: str, provider_payment_id: str, signature: str) -> bool:
        """常量时间比较签名"""
        self.require_configured()

        expected = compute_signature(self.key_secret, provider_order_id, provider_payment_id)
        if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            logger.warning("Razorpay签名不匹配", razorpay_order_id=provider_order_id)
            return False
        return True


# 全局网关实例
razorpay_gateway = RazorpayGateway()
