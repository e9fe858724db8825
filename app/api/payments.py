"""
支付接口
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Request, status

from app.api.dependencies import (
    CurrentUserId,
    get_payment_session_service,
    get_payment_verification_service,
    get_refund_service
)
from app.models.order import CheckoutRequest
from app.models.payment import (
    RazorpayVerifyRequest, RefundRequest, StripeVerifyRequest, VerificationOutcome
)
from app.services.payment_session_service import PaymentSessionService
from app.services.payment_verification_service import PaymentVerificationService
from app.services.refund_service import RefundService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["支付"])

SessionService = Annotated[PaymentSessionService, Depends(get_payment_session_service)]
VerificationService = Annotated[PaymentVerificationService, Depends(get_payment_verification_service)]


def verification_response(outcome: VerificationOutcome) -> dict:
    message = "Payment already verified" if outcome.already_processed else "Payment verified successfully"
    return {
        "success": True,
        "message": message,
        "data": {
            "orderId": outcome.order_id,
            "alreadyProcessed": outcome.already_processed,
            "paymentId": outcome.payment_id,
            "enrolledCourseIds": outcome.enrolled_course_ids,
        }
    }


@router.post("/create-stripe-session", status_code=status.HTTP_201_CREATED)
async def create_stripe_session(
    request: CheckoutRequest,
    user_id: CurrentUserId,
    service: SessionService
):
    """创建订单并返回Stripe收银台地址"""
    result = await service.checkout_with_stripe(user_id, request)
    return {"success": True, "data": result.to_response()}


@router.post("/create-razorpay-order", status_code=status.HTTP_201_CREATED)
async def create_razorpay_order(
    request: CheckoutRequest,
    user_id: CurrentUserId,
    service: SessionService
):
    """创建订单并返回Razorpay下单信息"""
    result = await service.checkout_with_razorpay(user_id, request)
    return {"success": True, "data": result.to_response()}


@router.post("/orders/{order_id}/session")
async def retry_payment_session(
    order_id: int,
    user_id: CurrentUserId,
    service: SessionService
):
    """待支付订单重新获取支付会话"""
    result = await service.retry_session(order_id, user_id)
    return {"success": True, "data": result.to_response()}


@router.post("/verify-stripe-payment")
async def verify_stripe_payment(
    request: StripeVerifyRequest,
    user_id: CurrentUserId,
    service: VerificationService
):
    """回跳页确认Stripe支付"""
    outcome = await service.verify_stripe_payment(request.order_id, request.session_id, user_id)
    return verification_response(outcome)


@router.post("/verify-razorpay-payment")
async def verify_razorpay_payment(
    request: RazorpayVerifyRequest,
    user_id: CurrentUserId,
    service: VerificationService
):
    """校验Razorpay支付签名"""
    outcome = await service.verify_razorpay_payment(
        order_id=request.order_id,
        razorpay_order_id=request.razorpay_order_id,
        razorpay_payment_id=request.razorpay_payment_id,
        razorpay_signature=request.razorpay_signature,
        user_id=user_id
    )
    return verification_response(outcome)


@router.post("/webhook/stripe")
async def stripe_webhook(
    request: Request,
    service: VerificationService,
    stripe_signature: Annotated[Optional[str], Header()] = None
):
    """Stripe webhook，需要原始请求体验签"""
    payload = await request.body()
    result = await service.handle_stripe_webhook(payload, stripe_signature)
    return {"success": True, **result}


@router.post("/refund")
async def refund_payment(
    request: RefundRequest,
    user_id: CurrentUserId,
    service: Annotated[RefundService, Depends(get_refund_service)]
):
    """Stripe订单退款"""
    result = await service.refund_order(request.order_id, request.reason, user_id)
    return {
        "success": True,
        "message": "Refund processed",
        "data": {"orderId": result.order_id, "refundId": result.refund_id}
    }
