"""
FastAPI 依赖注入

仓库绑定请求级会话，服务按构造函数注入仓库
"""

from typing import Annotated, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.exceptions import AuthenticationRequired
from app.core.database import get_db_session
from app.repositories.course_repository import CourseRepository
from app.repositories.coupon_repository import CouponRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.payment_repository import PaymentRepository, PaymentOrderRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.purchase_repository import PurchaseRepository
from app.services.enrollment_service import EnrollmentService
from app.services.notification_service import PaymentNotifier, payment_notifier
from app.services.order_service import OrderService
from app.services.payment_session_service import PaymentSessionService
from app.services.payment_verification_service import PaymentVerificationService
from app.services.payments.razorpay_gateway import RazorpayGateway, razorpay_gateway
from app.services.payments.stripe_gateway import StripeGateway, stripe_gateway
from app.services.price_calculator_service import PriceCalculatorService
from app.services.refund_service import RefundService

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


async def get_current_user_id(x_user_id: Annotated[Optional[str], Header()] = None) -> str:
    """从 X-User-Id 请求头获取调用方身份"""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequired("Authentication required")
    return x_user_id.strip()


CurrentUserId = Annotated[str, Depends(get_current_user_id)]


def get_stripe_gateway() -> StripeGateway:
    return stripe_gateway


def get_razorpay_gateway() -> RazorpayGateway:
    return razorpay_gateway


def get_payment_notifier() -> PaymentNotifier:
    return payment_notifier


def get_order_service(db: DbSession) -> OrderService:
    """订单服务"""
    coupon_repo = CouponRepository(db)
    product_repo = ProductRepository(db)
    return OrderService(
        order_repo=OrderRepository(db),
        price_calculator=PriceCalculatorService(product_repo, coupon_repo),
        coupon_repo=coupon_repo,
        product_repo=product_repo,
        course_repo=CourseRepository(db),
        purchase_repo=PurchaseRepository(db)
    )


def get_enrollment_service(db: DbSession) -> EnrollmentService:
    return EnrollmentService(CourseRepository(db), PurchaseRepository(db))


def get_payment_session_service(
    db: DbSession,
    order_service: Annotated[OrderService, Depends(get_order_service)],
    stripe: Annotated[StripeGateway, Depends(get_stripe_gateway)],
    razorpay: Annotated[RazorpayGateway, Depends(get_razorpay_gateway)]
) -> PaymentSessionService:
    """支付会话服务"""
    return PaymentSessionService(
        order_repo=order_service.order_repo,
        payment_order_repo=PaymentOrderRepository(db),
        order_service=order_service,
        stripe_gateway=stripe,
        razorpay_gateway=razorpay
    )


def get_payment_verification_service(
    db: DbSession,
    order_service: Annotated[OrderService, Depends(get_order_service)],
    enrollment_service: Annotated[EnrollmentService, Depends(get_enrollment_service)],
    stripe: Annotated[StripeGateway, Depends(get_stripe_gateway)],
    razorpay: Annotated[RazorpayGateway, Depends(get_razorpay_gateway)],
    notifier: Annotated[PaymentNotifier, Depends(get_payment_notifier)]
) -> PaymentVerificationService:
    """支付验证服务"""
    return PaymentVerificationService(
        order_repo=order_service.order_repo,
        payment_repo=PaymentRepository(db),
        payment_order_repo=PaymentOrderRepository(db),
        order_service=order_service,
        enrollment_service=enrollment_service,
        stripe_gateway=stripe,
        razorpay_gateway=razorpay,
        notifier=notifier
    )


def get_refund_service(
    db: DbSession,
    order_service: Annotated[OrderService, Depends(get_order_service)],
    stripe: Annotated[StripeGateway, Depends(get_stripe_gateway)]
) -> RefundService:
    """退款服务"""
    return RefundService(
        order_repo=order_service.order_repo,
        payment_repo=PaymentRepository(db),
        purchase_repo=PurchaseRepository(db),
        order_service=order_service,
        stripe_gateway=stripe
    )


def get_payment_order_repository(db: DbSession) -> PaymentOrderRepository:
    return PaymentOrderRepository(db)
