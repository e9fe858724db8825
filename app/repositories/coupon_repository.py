"""
优惠券数据库操作层
"""

from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.coupon import Coupon, CouponValidation, CouponStatus, as_utc
from app.models.database.coupon_db import CouponDB


class CouponRepository:
    """优惠券数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_coupon_code(self, coupon_code: str) -> Optional[CouponDB]:
        """根据优惠券代码获取优惠券"""
        result = await self.db.execute(
            select(CouponDB).where(CouponDB.coupon_code == coupon_code)
        )
        return result.scalar_one_or_none()

    async def validate_coupon(
        self,
        coupon_code: str,
        order_amount: Decimal,
        current_time: Optional[datetime] = None
    ) -> CouponValidation:
        """验证优惠券能否用于该订单金额"""
        current_time = as_utc(current_time or datetime.now(timezone.utc))

        coupon = await self.get_by_coupon_code(coupon_code)
        if not coupon:
            return CouponValidation(is_valid=False, validation_errors=["Coupon not found"])

        coupon_model = self.to_model(coupon)

        # 检查优惠券状态
        if coupon_model.status != CouponStatus.ACTIVE:
            return CouponValidation(
                is_valid=False,
                coupon=coupon_model,
                validation_errors=["Coupon is not active"]
            )

        # 检查有效期
        if current_time < coupon_model.valid_from:
            return CouponValidation(
                is_valid=False,
                coupon=coupon_model,
                validation_errors=["Coupon is not yet valid"]
            )

        if current_time > coupon_model.valid_to:
            return CouponValidation(
                is_valid=False,
                coupon=coupon_model,
                validation_errors=["Coupon has expired"]
            )

        # 检查总使用次数
        if coupon_model.usage_limit and coupon_model.used_count >= coupon_model.usage_limit:
            return CouponValidation(
                is_valid=False,
                coupon=coupon_model,
                validation_errors=["Coupon usage limit reached"]
            )

        # 检查最小订单金额
        if order_amount < coupon_model.min_order_amount:
            return CouponValidation(
                is_valid=False,
                coupon=coupon_model,
                validation_errors=[f"Order amount must be at least {coupon_model.min_order_amount}"]
            )

        return CouponValidation(
            is_valid=True,
            coupon=coupon_model,
            discount_amount=coupon_model.calculate_discount(order_amount)
        )

    async def increment_usage(self, coupon_id: str) -> bool:
        """使用次数+1，已达上限时不更新"""
        result = await self.db.execute(
            update(CouponDB)
            .where(
                and_(
                    CouponDB.coupon_id == coupon_id,
                    or_(
                        CouponDB.usage_limit.is_(None),
                        CouponDB.used_count < CouponDB.usage_limit
                    )
                )
            )
            .values(
                used_count=CouponDB.used_count + 1,
                updated_at=datetime.now(timezone.utc)
            )
        )
        return result.rowcount > 0

    def to_model(self, db_coupon: CouponDB) -> Coupon:
        """转换为Pydantic模型"""
        return Coupon(
            coupon_id=db_coupon.coupon_id,
            coupon_code=db_coupon.coupon_code,
            coupon_name=db_coupon.coupon_name,
            coupon_type=db_coupon.coupon_type,
            discount_value=db_coupon.discount_value,
            min_order_amount=db_coupon.min_order_amount or Decimal("0"),
            max_discount=db_coupon.max_discount,
            valid_from=db_coupon.valid_from,
            valid_to=db_coupon.valid_to,
            usage_limit=db_coupon.usage_limit,
            used_count=db_coupon.used_count or 0,
            description=db_coupon.description,
            status=db_coupon.status
        )
