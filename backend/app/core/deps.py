"""
FastAPI 依赖注入工具 - 权限控制和用户认证
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.roles import Role
from app.core.tokens import verify_access_token
from app.db.database import get_db
from app.models import User
from app.schemas.core.auth import UserIdentity
from app.services.users import get_user_by_id

bearer_scheme = HTTPBearer(auto_error=False)

__all__ = [
    "get_db",
    "get_current_identity",
    "get_current_user",
    "require_super_admin",
    "require_admin",
]


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> UserIdentity:
    """
    从 Authorization: Bearer 头解析访问令牌

    异常:
        401: 未提供令牌或令牌无效（不区分过期与篡改）
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未提供认证令牌",
            headers={"WWW-Authenticate": "Bearer"},
        )
    identity = verify_access_token(credentials.credentials)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证令牌",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def get_current_user(
    identity: UserIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    令牌对应的数据库用户

    异常:
        401: 用户已被删除
    """
    user = await get_user_by_id(db, identity.id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="用户不存在或已被删除")
    return user


async def require_super_admin(
    identity: UserIdentity = Depends(get_current_identity),
) -> UserIdentity:
    """要求超级管理员（403）"""
    if identity.role != Role.SUPER_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="需要超级管理员权限")
    return identity


async def require_admin(
    identity: UserIdentity = Depends(get_current_identity),
) -> UserIdentity:
    """要求管理员（包括超级管理员）"""
    if identity.role > Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="需要管理员权限")
    return identity
