"""
价格计算服务
金额只来自服务端目录价格，客户端提交的任何价格都不参与计算
"""

import logging
from typing import List, Optional, Tuple
from decimal import Decimal, ROUND_HALF_UP

from app.api.exceptions import ValidationError
from app.core.config import settings
from app.models.coupon import Coupon
from app.models.course import Course
from app.models.order import CartItem, OrderItem, PriceCalculation
from app.repositories.product_repository import ProductRepository
from app.repositories.coupon_repository import CouponRepository

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """四舍五入到分"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """转换为最小货币单位（分/派萨）"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PriceCalculatorService:
    """价格计算服务"""

    def __init__(
        self,
        product_repo: ProductRepository,
        coupon_repo: CouponRepository
    ):
        self.product_repo = product_repo
        self.coupon_repo = coupon_repo
        self.tax_rate = settings.tax_rate
        self.flat_shipping_fee = settings.flat_shipping_fee
        self.free_shipping_threshold = settings.free_shipping_threshold

    def shipping_for(self, subtotal: Decimal) -> Decimal:
        """低于包邮门槛收固定运费"""
        if subtotal >= self.free_shipping_threshold:
            return ZERO
        return to_money(self.flat_shipping_fee)

    def tax_for(self, taxable_amount: Decimal) -> Decimal:
        return to_money(taxable_amount * self.tax_rate)

    def build_calculation(
        self,
        items: List[OrderItem],
        discount: Decimal = ZERO,
        coupon_code: Optional[str] = None,
        charge_tax_and_shipping: bool = True
    ) -> PriceCalculation:
        """由订单项汇总金额

        total = subtotal + tax + shipping - discount，税按折后金额计算
        """
        subtotal = to_money(sum((item.line_total for item in items), ZERO))
        discount = to_money(min(discount, subtotal))

        if charge_tax_and_shipping:
            tax = self.tax_for(subtotal - discount)
            shipping = self.shipping_for(subtotal)
        else:
            tax = ZERO
            shipping = ZERO

        return PriceCalculation(
            items=items,
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            discount=discount,
            total=subtotal + tax + shipping - discount,
            coupon_code=coupon_code if discount > 0 else None
        )

    async def resolve_coupon(
        self,
        coupon_code: Optional[str],
        subtotal: Decimal
    ) -> Tuple[Decimal, Optional[Coupon]]:
        """校验优惠券，无效时整单拒绝"""
        if not coupon_code:
            return ZERO, None

        validation = await self.coupon_repo.validate_coupon(coupon_code, subtotal)
        if not validation.is_valid:
            logger.info(f"优惠券 {coupon_code} 不可用: {validation.error_message}")
            raise ValidationError(
                "Invalid coupon",
                details=[{"field": "couponCode", "message": validation.error_message}]
            )

        return validation.discount_amount, validation.coupon

    async def calculate_cart(
        self,
        cart_items: List[CartItem],
        coupon_code: Optional[str] = None
    ) -> Tuple[PriceCalculation, Optional[Coupon]]:
        """按目录价格计算购物车"""
        if not cart_items:
            raise ValidationError("Cart is empty")

        products = await self.product_repo.get_by_ids(item.product_id for item in cart_items)

        missing = [item.product_id for item in cart_items if item.product_id not in products]
        if missing:
            raise ValidationError("Product not found", details={"productIds": missing})

        inactive = [item.product_id for item in cart_items if not products[item.product_id].is_active]
        if inactive:
            raise ValidationError("Product is not available", details={"productIds": inactive})

        for cart_item in cart_items:
            product = products[cart_item.product_id]
            if (product.stock or 0) < cart_item.quantity:
                raise ValidationError(
                    f"Insufficient stock for {product.name}",
                    details={"productIds": [product.id], "available": product.stock or 0}
                )

        items = []
        for cart_item in cart_items:
            product = products[cart_item.product_id]
            unit_price = to_money(product.price)
            items.append(OrderItem(
                product_id=product.id,
                item_name=product.name,
                item_image=product.thumbnail,
                unit_price=unit_price,
                quantity=cart_item.quantity,
                line_total=unit_price * cart_item.quantity
            ))

        subtotal = to_money(sum((item.line_total for item in items), ZERO))
        discount, coupon = await self.resolve_coupon(coupon_code, subtotal)

        return self.build_calculation(items, discount, coupon_code), coupon

    async def calculate_course(
        self,
        course: Course,
        coupon_code: Optional[str] = None
    ) -> Tuple[PriceCalculation, Optional[Coupon]]:
        """课程订单：不收税费和运费"""
        unit_price = to_money(course.price)
        items = [
            OrderItem(
                course_id=course.course_id,
                item_name=course.title,
                item_image=course.thumbnail,
                unit_price=unit_price,
                quantity=1,
                line_total=unit_price
            )
        ]

        discount, coupon = await self.resolve_coupon(coupon_code, unit_price)

        return self.build_calculation(
            items, discount, coupon_code, charge_tax_and_shipping=False
        ), coupon
