"""
限流中间件 - 按客户端IP的固定窗口计数

仅在配置了 redis 时生效；redis 不可用时放行并记录告警。
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from api.utils.headers import client_ip
from core.config import settings
from core.exceptions import RateLimitException, business_code_to_http_status
from core.i18n import get_locale, t
from core.logging_config import get_logger
from core.response import error_response
from infrastructure.cache import get_redis_cache


logger = get_logger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    SKIP_PATHS = {"/", "/health", "/docs", "/redoc", "/openapi.json"}

    def __init__(self, app: ASGIApp, *, window_seconds: int | None = None, max_requests: int | None = None):
        super().__init__(app)
        self.window_seconds = window_seconds or settings.rate_limit.window_seconds
        self.max_requests = max_requests or settings.rate_limit.max_requests

    async def dispatch(self, request: Request, call_next):
        cache = get_redis_cache()
        if not settings.rate_limit.enabled or cache is None or request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        ip = client_ip(request) or "unknown"
        try:
            count, ttl = await cache.incr_window(f"ratelimit:{ip}", self.window_seconds)
        except RedisError as exc:
            logger.warning("rate_limit_unavailable", error=str(exc))
            return await call_next(request)

        if count > self.max_requests:
            logger.info("rate_limited", client_ip=ip, count=count)
            exc = RateLimitException(retry_after=ttl)
            body = error_response(
                code=exc.code,
                message=t(exc.message_key, **(exc.format_params or {})),
                error_type=exc.error_type,
                details=exc.details,
                request_id=getattr(request.state, "request_id", None),
                locale=get_locale(),
                message_key=exc.message_key,
            )
            return JSONResponse(
                status_code=business_code_to_http_status(exc.code),
                content=body.model_dump(mode="json"),
                headers={"Retry-After": str(ttl)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(self.max_requests - count, 0))
        return response
