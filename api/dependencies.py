"""
API依赖项 - 认证、授权与应用服务装配
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from application.dto import CurrentUserDTO
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentApplicationService
from application.services.token_service import TokenService
from core.exceptions import UnauthorizedException
from domain.common.exceptions import ForbiddenException
from infrastructure.adapters.notifier_port import CeleryOrderNotifier
from infrastructure.cache import get_redis_cache
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """从 Authorization: Bearer 头中提取token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("Authentication credentials were not provided")


async def get_token_service() -> TokenService:
    return TokenService(uow_factory=SQLAlchemyUnitOfWork)


async def get_current_user(
    token: str = Depends(get_token),
    service: TokenService = Depends(get_token_service),
) -> CurrentUserDTO:
    """获取当前登录用户（停用用户返回 403）"""
    return await service.authenticate(token)


async def get_current_admin(
    current_user: CurrentUserDTO = Depends(get_current_user),
) -> CurrentUserDTO:
    """获取当前管理员用户"""
    if not current_user.is_admin:
        raise ForbiddenException("Administrator privileges required", error_type="AdminRequired")
    return current_user


async def get_payment_service() -> PaymentApplicationService:
    return PaymentApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway_resolver=get_payment_gateway,
        notifier=CeleryOrderNotifier(),
        cache=get_redis_cache(),
    )


async def get_order_service(
    payment_service: PaymentApplicationService = Depends(get_payment_service),
) -> OrderApplicationService:
    return OrderApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        notifier=CeleryOrderNotifier(),
        payment_service=payment_service,
    )
