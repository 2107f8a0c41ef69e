"""
自定义异常映射与全局异常处理器
"""
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback
import uuid
from starlette import status as http_status

from .response import error_response
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from core.i18n import t, get_locale


class UnauthorizedException(BusinessException):
    """未授权异常"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="Unauthorized",
            message_key="auth.unauthorized" if message == "Unauthorized" else None,
        )


class TokenExpiredException(BusinessException):
    """Token过期异常"""

    def __init__(self):
        super().__init__(
            code=BusinessCode.TOKEN_EXPIRED,
            message="Token expired",
            error_type="TokenExpired",
            message_key="auth.token.expired",
        )


class RateLimitException(BusinessException):
    """限流异常"""

    def __init__(self, retry_after: Optional[int] = None):
        details = {"retry_after": retry_after} if retry_after else None
        super().__init__(
            code=BusinessCode.TOO_MANY_REQUESTS,
            message="Too many requests, please try again later",
            error_type="RateLimit",
            details=details,
            message_key="rate.limited",
            format_params=details or {},
        )


_BUSINESS_STATUS = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_MISSING: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_TYPE_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_400_BAD_REQUEST,

    BusinessCode.BUSINESS_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.ORDER_INVALID_TRANSITION: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PAYMENT_NOT_REFUNDABLE: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PAYMENT_GATEWAY_UNSUPPORTED: http_status.HTTP_400_BAD_REQUEST,

    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.ORDER_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.PAYMENT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.SELLER_PAYOUT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,

    BusinessCode.CONFLICT: http_status.HTTP_409_CONFLICT,
    BusinessCode.ORDER_ITEMS_UNAVAILABLE: http_status.HTTP_409_CONFLICT,
    BusinessCode.ORDER_ALREADY_PAID: http_status.HTTP_409_CONFLICT,
    BusinessCode.ORDER_NUMBER_CONFLICT: http_status.HTTP_409_CONFLICT,
    BusinessCode.PAYMENT_ALREADY_REFUNDED: http_status.HTTP_409_CONFLICT,

    BusinessCode.TOKEN_INVALID: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.TOKEN_EXPIRED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.PERMISSION_ERROR: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,

    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.DATABASE_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.NETWORK_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,

    BusinessCode.RATE_LIMIT_ERROR: http_status.HTTP_429_TOO_MANY_REQUESTS,
    BusinessCode.TOO_MANY_REQUESTS: http_status.HTTP_429_TOO_MANY_REQUESTS,
}

_PAYMENT_STATUS = {
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_RECOVERABLE: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.RATE_LIMITED: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.TIMEOUT: http_status.HTTP_504_GATEWAY_TIMEOUT,
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_401_UNAUTHORIZED,
}


def business_code_to_http_status(code: int) -> int:
    """根据业务码映射HTTP状态码（默认400）。"""
    if code in _PAYMENT_STATUS:
        return _PAYMENT_STATUS[PaymentCode(code)]
    try:
        return _BUSINESS_STATUS.get(BusinessCode(code), http_status.HTTP_400_BAD_REQUEST)
    except ValueError:
        return http_status.HTTP_400_BAD_REQUEST


def _format_validation_error(error: dict) -> str:
    loc = [str(p) for p in error.get("loc", []) if p not in ("body", "query", "path")]
    field = ".".join(loc)
    msg = error.get("msg", "invalid value")
    return f"{field}: {msg}" if field else msg


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    logger = get_logger(__name__)

    def _request_id(request: Request) -> str:
        return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """处理业务异常"""
        request_id = _request_id(request)
        locale = get_locale()
        # Render i18n message if message_key is provided, otherwise fallback to original message
        fmt_params = getattr(exc, "format_params", None)
        params = fmt_params if isinstance(fmt_params, dict) else (exc.details or {})
        translated = t(exc.message_key, **params) if exc.message_key else exc.message
        response = error_response(
            code=exc.code,
            message=translated,
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=request_id,
            locale=locale,
            message_key=exc.message_key,
        )
        status_code = business_code_to_http_status(exc.code)
        if status_code >= 500:
            logger.error("business_exception", request_id=request_id, code=int(exc.code), error=exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=status_code, content=response.model_dump(mode='json'), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常"""
        request_id = _request_id(request)
        errors = exc.errors()
        messages = [_format_validation_error(e) for e in errors]

        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        response = error_response(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=t("validation.failed", reason="; ".join(messages) or "unknown"),
            error_type="ValidationError",
            field=field or None,
            request_id=request_id,
            locale=get_locale(),
            message_key="validation.failed",
            errors=messages,
        )
        return JSONResponse(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            content=response.model_dump(mode='json')
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """处理HTTP异常"""
        request_id = _request_id(request)

        code_mapping = {
            401: BusinessCode.UNAUTHORIZED,
            403: BusinessCode.FORBIDDEN,
            404: BusinessCode.NOT_FOUND,
            405: BusinessCode.PARAM_ERROR,
            429: BusinessCode.TOO_MANY_REQUESTS,
            500: BusinessCode.SYSTEM_ERROR,
            503: BusinessCode.SERVICE_UNAVAILABLE
        }
        code = code_mapping.get(exc.status_code, BusinessCode.SYSTEM_ERROR)

        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=request_id,
            locale=get_locale(),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常"""
        request_id = _request_id(request)

        # 在开发环境可以返回详细错误信息
        details = None
        if app.debug:
            details = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        response = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message=t("error.internal"),
            error_type="SystemError",
            details=details,
            request_id=request_id,
            locale=get_locale(),
            message_key="error.internal",
        )

        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )

        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )
