"""
业务异常定义与FastAPI异常处理器

所有处理器都返回统一的响应信封 {success: false, error, details?}
"""

import logging
from typing import Any, Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class BusinessException(Exception):
    """业务异常基类"""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Any] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(BusinessException):
    """支付渠道或数据库未配置"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ValidationError(BusinessException):
    """请求内容不合法（购物车为空、商品不存在或已下架等）"""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidSignatureError(BusinessException):
    """签名校验失败，绝不能继续修改状态"""
    status_code = status.HTTP_400_BAD_REQUEST


class AlreadyProcessedError(BusinessException):
    """订单已支付/已退款，或课程已购买"""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BusinessException):
    """订单/课程/商品不存在"""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BusinessException):
    """唯一约束冲突，调用方可重试"""
    status_code = status.HTTP_409_CONFLICT


class ProviderError(BusinessException):
    """支付渠道接口调用失败"""
    status_code = status.HTTP_502_BAD_GATEWAY


class AuthenticationRequired(BusinessException):
    """缺少调用方身份"""
    status_code = status.HTTP_401_UNAUTHORIZED


def error_envelope(message: str, details: Optional[Any] = None) -> dict:
    body = {"success": False, "error": message}
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return body


async def business_exception_handler(request: Request, exc: BusinessException) -> JSONResponse:
    """业务异常处理"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} 失败: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} 被拒绝: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.message, exc.details)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求体校验失败，返回字段级错误"""
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_envelope("Invalid request", details)
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """框架层HTTP异常（404路由、405方法等）"""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(str(exc.detail))
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常处理"""
    logger.exception(f"{request.method} {request.url.path} 数据库异常: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope("Database error")
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """未预期异常处理"""
    logger.exception(f"{request.method} {request.url.path} 未处理异常: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope("Internal server error")
    )
