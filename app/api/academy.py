"""
课程购买与报名接口
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder

from app.api.dependencies import (
    CurrentUserId,
    get_enrollment_service,
    get_payment_order_repository,
    get_payment_session_service,
    get_payment_verification_service
)
from app.api.payments import verification_response
from app.models.course import FreeEnrollmentRequest, Purchase
from app.models.order import CourseCheckoutRequest
from app.models.payment import RazorpayVerifyRequest
from app.repositories.payment_repository import PaymentOrderRepository
from app.services.enrollment_service import EnrollmentService
from app.services.payment_session_service import PaymentSessionService
from app.services.payment_verification_service import PaymentVerificationService

router = APIRouter(prefix="/api/academy", tags=["课程购买"])

Enrollment = Annotated[EnrollmentService, Depends(get_enrollment_service)]


def purchase_payload(purchase: Purchase) -> dict:
    return jsonable_encoder({
        "id": purchase.id,
        "courseId": purchase.course_id,
        "orderId": purchase.order_id,
        "paymentId": purchase.provider_payment_id,
        "amount": str(purchase.amount),
        "status": purchase.status,
        "purchasedAt": purchase.created_at,
    })


@router.post("/payments/create-order", status_code=status.HTTP_201_CREATED)
async def create_course_order(
    request: CourseCheckoutRequest,
    user_id: CurrentUserId,
    service: Annotated[PaymentSessionService, Depends(get_payment_session_service)]
):
    """课程下单，返回Razorpay下单信息"""
    result = await service.checkout_course(user_id, request)
    return {"success": True, "data": result.to_response()}


@router.post("/payments/verify")
async def verify_course_payment(
    request: RazorpayVerifyRequest,
    user_id: CurrentUserId,
    service: Annotated[PaymentVerificationService, Depends(get_payment_verification_service)]
):
    """校验课程支付并开通课程"""
    outcome = await service.verify_razorpay_payment(
        order_id=request.order_id,
        razorpay_order_id=request.razorpay_order_id,
        razorpay_payment_id=request.razorpay_payment_id,
        razorpay_signature=request.razorpay_signature,
        user_id=user_id
    )
    return verification_response(outcome)


@router.post("/enroll-free", status_code=status.HTTP_201_CREATED)
async def enroll_free(request: FreeEnrollmentRequest, user_id: CurrentUserId, service: Enrollment):
    """免费课程报名"""
    outcome = await service.enroll_free(user_id, request.course_id)
    return {
        "success": True,
        "message": "Enrolled successfully",
        "data": purchase_payload(outcome.purchase)
    }


@router.get("/purchases/check/{course_id}")
async def check_purchase(course_id: str, user_id: CurrentUserId, service: Enrollment):
    """检查是否已购买课程"""
    purchased = await service.has_purchased(user_id, course_id)
    return {"success": True, "data": {"courseId": course_id, "purchased": purchased}}


@router.get("/purchases")
async def list_purchases(user_id: CurrentUserId, service: Enrollment):
    """当前用户的购买记录"""
    purchases = await service.get_user_purchases(user_id)
    return {"success": True, "data": [purchase_payload(p) for p in purchases]}


@router.get("/payments/history")
async def payment_history(
    user_id: CurrentUserId,
    repo: Annotated[PaymentOrderRepository, Depends(get_payment_order_repository)]
):
    """当前用户的课程支付历史"""
    payment_orders = await repo.get_user_payment_orders(user_id)
    return {
        "success": True,
        "data": [
            jsonable_encoder({
                "id": po.id,
                "orderId": po.order_id,
                "courseId": po.course_id,
                "razorpayOrderId": po.provider_order_id,
                "razorpayPaymentId": po.provider_payment_id,
                "amount": str(po.amount),
                "currency": po.currency,
                "status": po.status,
                "createdAt": po.created_at,
            })
            for po in map(repo.to_model, payment_orders)
        ]
    }
