from fastapi import APIRouter
import logging

from app.core.config import settings
from app.core.redis import redis_manager
from app.core.database import database_service
from app.services.payments.stripe_gateway import stripe_gateway
from app.services.payments.razorpay_gateway import razorpay_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """基础健康检查接口"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "providers": {
            "stripe": stripe_gateway.configured,
            "razorpay": razorpay_gateway.configured
        }
    }


@router.get("/database")
async def database_health():
    """数据库与Redis连接健康检查"""
    health_status = {
        "database": False,
        "redis": False,
        "overall": False,
        "details": {}
    }

    db_status = await database_service.health_check()
    health_status["database"] = db_status["status"] == "healthy"
    health_status["details"]["database"] = db_status["message"]

    if redis_manager.redis_pool:
        health_status["redis"] = await redis_manager.ping()
        health_status["details"]["redis"] = "连接正常" if health_status["redis"] else "连接失败"
    else:
        health_status["details"]["redis"] = "连接池未初始化"

    # Redis只用于缓存，不影响整体可用性
    health_status["overall"] = health_status["database"]

    if not health_status["overall"]:
        logger.warning(f"数据库连接检查失败: {health_status['details']}")
    else:
        logger.info("数据库连接检查通过")

    return health_status
