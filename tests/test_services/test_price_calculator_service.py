"""
PriceCalculatorService价格计算测试
"""

import pytest
from decimal import Decimal

from app.api.exceptions import ValidationError
from app.models.course import Course
from app.models.order import CartItem
from app.repositories.coupon_repository import CouponRepository
from app.repositories.product_repository import ProductRepository
from app.services.price_calculator_service import PriceCalculatorService, to_minor_units, to_money


def cart(*pairs):
    return [CartItem(product_id=product_id, quantity=quantity) for product_id, quantity in pairs]


class TestMoneyHelpers:

    def test_to_money_rounds_half_up(self):
        assert to_money(Decimal("2.345")) == Decimal("2.35")
        assert to_money(Decimal("2.344")) == Decimal("2.34")

    def test_to_minor_units(self):
        assert to_minor_units(Decimal("65.00")) == 6500
        assert to_minor_units(Decimal("499.99")) == 49999


@pytest.mark.asyncio
class TestPriceCalculatorService:
    """PriceCalculatorService测试类"""

    @pytest.fixture
    def calculator(self, db_session, catalog):
        return PriceCalculatorService(ProductRepository(db_session), CouponRepository(db_session))

    async def test_tax_and_flat_shipping(self, calculator):
        calculation, coupon = await calculator.calculate_cart(cart((1, 2)))

        assert coupon is None
        assert calculation.subtotal == Decimal("50.00")
        assert calculation.tax == Decimal("5.00")
        assert calculation.shipping == Decimal("10.00")
        assert calculation.discount == Decimal("0.00")
        assert calculation.total == Decimal("65.00")
        assert calculation.items[0].item_name == "Canvas Tote"
        assert calculation.items[0].item_image == "https://cdn.example.com/tote.png"

    async def test_free_shipping_at_threshold(self, calculator):
        calculation, _ = await calculator.calculate_cart(cart((1, 4)))

        assert calculation.subtotal == Decimal("100.00")
        assert calculation.shipping == Decimal("0.00")
        assert calculation.total == Decimal("110.00")

    async def test_multiple_lines(self, calculator):
        calculation, _ = await calculator.calculate_cart(cart((1, 1), (3, 1)))

        assert calculation.subtotal == Decimal("85.00")
        assert calculation.tax == Decimal("8.50")
        assert calculation.total == Decimal("103.50")

    async def test_coupon_discount_applies_before_tax(self, calculator):
        calculation, coupon = await calculator.calculate_cart(cart((1, 2)), "SAVE10")

        assert coupon.coupon_id == "cpn_save10"
        assert calculation.discount == Decimal("10.00")
        assert calculation.tax == Decimal("4.00")
        assert calculation.total == Decimal("54.00")
        assert calculation.coupon_code == "SAVE10"

    async def test_invalid_coupon_rejects_cart(self, calculator):
        with pytest.raises(ValidationError) as exc_info:
            await calculator.calculate_cart(cart((1, 2)), "OLD20")

        assert exc_info.value.message == "Invalid coupon"
        assert exc_info.value.details[0]["message"] == "Coupon has expired"

    async def test_unknown_product(self, calculator):
        with pytest.raises(ValidationError) as exc_info:
            await calculator.calculate_cart(cart((1, 1), (999, 1)))

        assert exc_info.value.message == "Product not found"
        assert exc_info.value.details == {"productIds": [999]}

    async def test_inactive_product(self, calculator):
        with pytest.raises(ValidationError, match="Product is not available"):
            await calculator.calculate_cart(cart((2, 1)))

    async def test_insufficient_stock(self, calculator):
        with pytest.raises(ValidationError) as exc_info:
            await calculator.calculate_cart(cart((1, 2), (3, 11)))

        assert exc_info.value.message == "Insufficient stock for Desk Lamp"
        assert exc_info.value.details == {"productIds": [3], "available": 10}

    async def test_empty_cart(self, calculator):
        with pytest.raises(ValidationError, match="Cart is empty"):
            await calculator.calculate_cart([])

    async def test_course_has_no_tax_or_shipping(self, calculator):
        course = Course(course_id="py-101", title="Python 101", price=Decimal("499.00"))

        calculation, _ = await calculator.calculate_course(course)

        assert calculation.tax == Decimal("0.00")
        assert calculation.shipping == Decimal("0.00")
        assert calculation.total == Decimal("499.00")
        assert calculation.items[0].course_id == "py-101"
