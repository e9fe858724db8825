"""
测试数据构造与服务组装
"""

from types import SimpleNamespace

from app.repositories.course_repository import CourseRepository
from app.repositories.coupon_repository import CouponRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.payment_repository import PaymentRepository, PaymentOrderRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.purchase_repository import PurchaseRepository
from app.services.enrollment_service import EnrollmentService
from app.services.order_service import OrderService
from app.services.payment_session_service import PaymentSessionService
from app.services.payment_verification_service import PaymentVerificationService
from app.services.price_calculator_service import PriceCalculatorService
from app.services.refund_service import RefundService

TEST_USER_ID = "user_001"
OTHER_USER_ID = "user_002"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
RAZORPAY_KEY_ID = "rzp_test_key"
RAZORPAY_KEY_SECRET = "rzp_test_secret"


def build_services(db, stripe_gateway, razorpay_gateway, notifier, event_cache=None) -> SimpleNamespace:
    """按请求依赖的方式组装仓库与服务"""
    order_repo = OrderRepository(db)
    coupon_repo = CouponRepository(db)
    course_repo = CourseRepository(db)
    purchase_repo = PurchaseRepository(db)
    payment_repo = PaymentRepository(db)
    payment_order_repo = PaymentOrderRepository(db)
    product_repo = ProductRepository(db)

    order_service = OrderService(
        order_repo=order_repo,
        price_calculator=PriceCalculatorService(product_repo, coupon_repo),
        coupon_repo=coupon_repo,
        product_repo=product_repo,
        course_repo=course_repo,
        purchase_repo=purchase_repo
    )
    enrollment_service = EnrollmentService(course_repo, purchase_repo)

    return SimpleNamespace(
        order_repo=order_repo,
        coupon_repo=coupon_repo,
        product_repo=product_repo,
        purchase_repo=purchase_repo,
        payment_repo=payment_repo,
        payment_order_repo=payment_order_repo,
        order_service=order_service,
        enrollment_service=enrollment_service,
        sessions=PaymentSessionService(
            order_repo=order_repo,
            payment_order_repo=payment_order_repo,
            order_service=order_service,
            stripe_gateway=stripe_gateway,
            razorpay_gateway=razorpay_gateway
        ),
        verification=PaymentVerificationService(
            order_repo=order_repo,
            payment_repo=payment_repo,
            payment_order_repo=payment_order_repo,
            order_service=order_service,
            enrollment_service=enrollment_service,
            stripe_gateway=stripe_gateway,
            razorpay_gateway=razorpay_gateway,
            notifier=notifier,
            event_cache=event_cache
        ),
        refunds=RefundService(
            order_repo=order_repo,
            payment_repo=payment_repo,
            purchase_repo=purchase_repo,
            order_service=order_service,
            stripe_gateway=stripe_gateway
        )
    )


def shipping_address(**overrides) -> dict:
    address = {
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "+1 555 0100",
        "street": "12 Analytical Way",
        "city": "London",
        "state": "Greater London",
        "postalCode": "N1 9GU",
        "country": "GB",
    }
    address.update(overrides)
    return address


def checkout_body(items=None, payment_method="stripe", **extra) -> dict:
    body = {
        "items": items if items is not None else [{"productId": 1, "quantity": 2}],
        "shippingAddress": shipping_address(),
        "paymentMethod": payment_method,
    }
    body.update(extra)
    return body


def paid_stripe_session(order, session_id=None, payment_intent="pi_test_1", **overrides) -> dict:
    """与StripeGateway.retrieve_session返回结构一致的已支付会话"""
    session = {
        "id": session_id or f"cs_test_{order.id}",
        "status": "complete",
        "payment_status": "paid",
        "amount_total": int(order.total * 100),
        "currency": "usd",
        "payment_intent": payment_intent,
        "url": None,
        "metadata": {"orderId": str(order.id), "orderNumber": order.order_number},
    }
    session.update(overrides)
    return session
