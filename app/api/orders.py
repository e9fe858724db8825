"""
订单查询与取消接口
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import CurrentUserId, get_order_service
from app.models.order import OrderCancelRequest, OrderResponse, OrderStatus
from app.services.order_service import OrderService

router = APIRouter(prefix="/api/orders", tags=["订单"])

Orders = Annotated[OrderService, Depends(get_order_service)]


def order_payload(order) -> dict:
    return OrderResponse.from_order(order).model_dump(mode="json", by_alias=True)


@router.get("")
async def list_orders(
    user_id: CurrentUserId,
    service: Orders,
    status: Optional[OrderStatus] = Query(None, description="订单状态过滤"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
):
    """获取当前用户的订单列表"""
    orders = await service.get_user_orders(
        user_id=user_id,
        limit=limit,
        offset=offset,
        status_filter=status.value if status else None
    )
    return {"success": True, "data": [order_payload(order) for order in orders]}


@router.get("/{order_id}")
async def get_order(order_id: int, user_id: CurrentUserId, service: Orders):
    """获取订单详情"""
    order = await service.get_order(order_id, user_id)
    return {"success": True, "data": order_payload(order)}


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    user_id: CurrentUserId,
    service: Orders,
    request: Optional[OrderCancelRequest] = None
):
    """取消订单"""
    order = await service.cancel_order(order_id, user_id, request.reason if request else None)
    return {"success": True, "message": "Order cancelled", "data": order_payload(order)}
