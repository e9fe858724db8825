from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from app.core.config import settings
from app.core.redis import redis_manager
from app.core.database import init_database, close_database
from app.api.health import router as health_router
from app.api.payments import router as payments_router
from app.api.orders import router as orders_router
from app.api.academy import router as academy_router
from app.api.exceptions import (
    validation_exception_handler,
    http_exception_handler,
    database_exception_handler,
    general_exception_handler,
    business_exception_handler,
    BusinessException
)
from app.services.common_cache import order_cache, webhook_event_cache
from app.services.notification_service import payment_notifier

# 简化日志配置
import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info(f"正在启动 {settings.app_name}")

    try:
        await init_database()
        logger.info("数据库初始化成功")
    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    # Redis只承担缓存与事件去重，连接失败时降级运行
    try:
        await redis_manager.init_redis()
        order_cache.bind(redis_manager.redis_pool)
        webhook_event_cache.bind(redis_manager.redis_pool)
        logger.info("Redis初始化成功")
    except Exception as e:
        logger.warning(f"Redis不可用，缓存已禁用: {e}")

    if not settings.stripe_configured:
        logger.warning("Stripe未配置，相关接口将返回503")
    if not settings.razorpay_configured:
        logger.warning("Razorpay未配置，相关接口将返回503")
    if not settings.stripe_webhook_secret and settings.unsigned_webhooks_allowed:
        logger.warning("已允许未签名的Stripe webhook，仅可用于本地开发")

    logger.info("应用启动完成")

    yield

    logger.info("正在关闭应用")
    await payment_notifier.drain()
    order_cache.bind(None)
    webhook_event_cache.bind(None)
    await close_database()
    await redis_manager.close_redis()
    logger.info("应用关闭完成")


# 创建FastAPI应用
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="电商与课程平台的下单、支付验证、报名与退款服务",
    debug=settings.debug,
    lifespan=lifespan
)

# CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 注册路由
app.include_router(health_router)
app.include_router(payments_router)
app.include_router(orders_router)
app.include_router(academy_router)

# 注册异常处理器
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(BusinessException, business_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": f"欢迎使用 {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8002,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
