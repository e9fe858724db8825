"""
订单业务服务层
负责校验购物车、按服务端价格计算金额并持久化待支付订单
"""

import logging
import secrets
import string
import time
from typing import List, Optional

from app.api.exceptions import (
    AlreadyProcessedError, ConflictError, NotFoundError, ValidationError
)
from app.core.config import settings
from app.models.coupon import Coupon
from app.models.course import CourseStatus
from app.models.order import (
    Order, OrderItem, CheckoutRequest, CourseCheckoutRequest, FulfillmentKind,
    PaymentMethod, PriceCalculation
)
from app.repositories.order_repository import OrderRepository
from app.repositories.course_repository import CourseRepository
from app.repositories.coupon_repository import CouponRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.purchase_repository import PurchaseRepository
from app.services.common_cache import order_cache
from app.services.price_calculator_service import PriceCalculatorService

logger = logging.getLogger(__name__)

_BASE36_ALPHABET = string.digits + string.ascii_uppercase


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits)) or "0"


def generate_order_number() -> str:
    """ORD-<毫秒时间戳base36>-<4位随机字符>"""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(4))
    return f"ORD-{timestamp}-{suffix}"


class OrderService:
    """订单业务服务"""

    def __init__(
        self,
        order_repo: OrderRepository,
        price_calculator: PriceCalculatorService,
        coupon_repo: CouponRepository,
        product_repo: Optional[ProductRepository] = None,
        course_repo: Optional[CourseRepository] = None,
        purchase_repo: Optional[PurchaseRepository] = None
    ):
        self.order_repo = order_repo
        self.price_calculator = price_calculator
        self.coupon_repo = coupon_repo
        self.product_repo = product_repo or price_calculator.product_repo
        self.course_repo = course_repo
        self.purchase_repo = purchase_repo
        self.cache = order_cache
        self.cache_prefix = "detail"
        self.cache_ttl = 1800  # 30分钟缓存
        self.order_number_factory = generate_order_number

    async def create_checkout_order(self, user_id: str, request: CheckoutRequest) -> Order:
        """实物商品下单"""
        calculation, coupon = await self.price_calculator.calculate_cart(
            request.items, request.coupon_code
        )

        shipping_address = request.shipping_address.model_dump(by_alias=True)
        billing_address = (
            request.billing_address.model_dump(by_alias=True)
            if request.billing_address else shipping_address
        )

        order = await self._persist_order(
            user_id=user_id,
            calculation=calculation,
            coupon=coupon,
            fulfillment_kind=FulfillmentKind.PHYSICAL_GOODS,
            payment_method=request.payment_method,
            shipping_address=shipping_address,
            billing_address=billing_address,
            contact_email=request.shipping_address.email
        )

        logger.info(
            f"订单已创建 {order.order_number}: 用户 {user_id}, "
            f"{len(order.items)} 件商品, 总额 {order.total}"
        )
        return order

    async def create_course_order(self, user_id: str, request: CourseCheckoutRequest) -> Order:
        """课程下单，只走Razorpay"""
        if not self.course_repo or not self.purchase_repo:
            raise RuntimeError("OrderService未配置课程仓库")

        db_course = await self.course_repo.get_by_course_id(request.course_id)
        if not db_course:
            raise NotFoundError("Course not found")

        course = self.course_repo.to_model(db_course)
        if course.status != CourseStatus.ACTIVE:
            raise ValidationError("Course is not available")
        if course.free:
            raise ValidationError("This course is free, use free enrollment instead")

        if await self.purchase_repo.has_active_purchase(user_id, course.course_id):
            raise AlreadyProcessedError("Course already purchased")

        calculation, coupon = await self.price_calculator.calculate_course(
            course, request.coupon_code
        )

        order = await self._persist_order(
            user_id=user_id,
            calculation=calculation,
            coupon=coupon,
            fulfillment_kind=FulfillmentKind.COURSE_ENROLLMENT,
            payment_method=PaymentMethod.RAZORPAY,
            contact_email=request.email
        )

        logger.info(f"课程订单已创建 {order.order_number}: 用户 {user_id}, 课程 {course.course_id}")
        return order

    async def _persist_order(
        self,
        user_id: str,
        calculation: PriceCalculation,
        coupon: Optional[Coupon],
        fulfillment_kind: FulfillmentKind,
        payment_method: PaymentMethod,
        shipping_address: Optional[dict] = None,
        billing_address: Optional[dict] = None,
        contact_email: Optional[str] = None
    ) -> Order:
        """订单、订单项、库存扣减和优惠券计数在同一个SAVEPOINT中写入

        任一步失败整体回滚；订单号冲突时换号重试
        """
        order_fields = {
            "fulfillment_kind": fulfillment_kind.value,
            "subtotal": calculation.subtotal,
            "tax": calculation.tax,
            "shipping": calculation.shipping,
            "discount": calculation.discount,
            "total": calculation.total,
            "applied_coupon_code": calculation.coupon_code,
            "payment_method": payment_method.value,
            "shipping_address": shipping_address,
            "billing_address": billing_address,
            "contact_email": contact_email,
        }

        async with self.order_repo.db.begin_nested():
            db_order = await self._insert_with_unique_number(user_id, order_fields, calculation.items)
            await self._reserve_stock(calculation.items)

            if coupon and calculation.discount > 0:
                if not await self.coupon_repo.increment_usage(coupon.coupon_id):
                    raise ValidationError("Coupon usage limit reached")

        return self.order_repo.to_model(db_order)

    async def _insert_with_unique_number(
        self,
        user_id: str,
        order_fields: dict,
        items: List[OrderItem]
    ):
        for attempt in range(1, settings.order_number_max_attempts + 1):
            order_number = self.order_number_factory()
            db_order = await self.order_repo.create_order_with_items(
                order_number=order_number,
                user_id=user_id,
                order_fields=order_fields,
                items=items
            )
            if db_order is not None:
                return db_order
            logger.warning(f"订单号冲突 {order_number}，第 {attempt} 次尝试")

        raise ConflictError("Could not allocate a unique order number, please retry")

    async def _reserve_stock(self, items: List[OrderItem]) -> None:
        """条件扣减库存，并发下单导致库存不足时拒绝"""
        for item in items:
            if item.product_id is None:
                continue
            if not await self.product_repo.reserve_stock(item.product_id, item.quantity):
                logger.info(f"商品 {item.product_id} 库存不足，需要 {item.quantity}")
                raise ValidationError(
                    f"Insufficient stock for {item.item_name}",
                    details={"productIds": [item.product_id]}
                )

    async def _release_stock(self, items: List[OrderItem]) -> None:
        for item in items:
            if item.product_id is not None:
                await self.product_repo.release_stock(item.product_id, item.quantity)

    async def get_order(self, order_id: int, user_id: str, use_cache: bool = True) -> Order:
        """获取订单详情，非本人订单按不存在处理"""
        cache_key = f"{self.cache_prefix}:{order_id}"

        if use_cache:
            cached_order = await self.cache.get(cache_key)
            if cached_order:
                order = Order.model_validate(cached_order)
                if order.user_id != user_id:
                    raise NotFoundError("Order not found")
                return order

        db_order = await self.order_repo.get_user_order(order_id, user_id)
        if not db_order:
            raise NotFoundError("Order not found")

        order = self.order_repo.to_model(db_order)

        if use_cache:
            await self.cache.set(cache_key, order.model_dump(mode="json"), ttl=self.cache_ttl)

        return order

    async def get_user_orders(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[Order]:
        """获取用户订单列表"""
        db_orders = await self.order_repo.get_user_orders(
            user_id=user_id,
            limit=limit,
            offset=offset,
            status_filter=status_filter
        )
        return [self.order_repo.to_model(db_order) for db_order in db_orders]

    async def cancel_order(self, order_id: int, user_id: str, reason: Optional[str] = None) -> Order:
        """取消订单"""
        db_order = await self.order_repo.get_user_order(order_id, user_id)
        if not db_order:
            raise NotFoundError("Order not found")
        order = self.order_repo.to_model(db_order)

        if not await self.order_repo.cancel_order(order_id, reason):
            raise ValidationError(f"Order cannot be cancelled in status '{order.status.value}'")

        # 归还下单时扣减的库存
        await self._release_stock(order.items)

        await self.invalidate(order_id)
        logger.info(f"订单已取消 {order.order_number}: {reason or '无原因'}")

        return self.order_repo.to_model(await self.order_repo.get_by_id(order_id))

    async def invalidate(self, order_id: int) -> None:
        """订单状态变化后清除缓存"""
        await self.cache.delete(f"{self.cache_prefix}:{order_id}")
