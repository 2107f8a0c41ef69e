"""
令牌服务 - 校验访问令牌并解析当前用户

令牌由认证服务签发（HS256，sub 为用户ID）；这里只负责校验，
create_access_token 供工具脚本与测试使用。
"""
from typing import Callable, Optional
from datetime import datetime, timedelta, timezone
import uuid

import jwt

from application.dto import CurrentUserDTO
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger
from domain.common.exceptions import UserInactiveException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.entity import User


logger = get_logger(__name__)


def create_access_token(user: User, expires_minutes: Optional[int] = None) -> str:
    """创建访问令牌"""
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "exp": expire,
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


class TokenService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    def verify_access_token(self, token: str) -> Optional[int]:
        """Verify an access JWT and return the user id.

        - Expired token: raise TokenExpiredException
        - Invalid token or wrong type: return None
        """
        try:
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.InvalidTokenError:
            return None

        if payload.get("type", "access") != "access":
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None
        try:
            return int(user_id)
        except (TypeError, ValueError):
            return None

    async def authenticate(self, token: str) -> CurrentUserDTO:
        """令牌 -> 当前用户；无效令牌或用户不存在返回 401，停用用户返回 403"""
        user_id = self.verify_access_token(token)
        if user_id is None:
            raise UnauthorizedException("Invalid authentication token")

        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(user_id)
        if user is None:
            logger.info("token_user_missing", user_id=user_id)
            raise UnauthorizedException("Invalid authentication token")
        if not user.is_active:
            raise UserInactiveException()
        return CurrentUserDTO.model_validate(user)
