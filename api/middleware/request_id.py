"""
Request ID 中间件
用于生成或透传追踪ID，并通过contextvars传递给日志系统
"""
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog

from api.utils.headers import client_ip as resolve_client_ip


# 在请求生命周期内共享 request_id / client_ip
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    功能：
    1. 从请求头获取或生成新的request_id
    2. 将request_id与客户端IP绑定到structlog上下文
    3. 在响应头中返回request_id
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = resolve_client_ip(request) or "unknown"

        request.state.request_id = request_id
        request.state.client_ip = client_ip
        request_id_var.set(request_id)
        client_ip_var.set(client_ip)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def get_request_id() -> Optional[str]:
    """当前请求的request_id，不在请求上下文中返回None"""
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    return client_ip_var.get()
