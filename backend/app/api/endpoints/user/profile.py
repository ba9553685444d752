"""
当前用户的个人设置端点
修改密码、更新个人资料
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import get_current_identity, get_db
from app.core.tokens import issue_access_token
from app.models import User
from app.schemas.core.auth import ChangePasswordRequest, ProfileUpdateRequest, UserIdentity
from app.services.users import build_identity, change_password, get_user_by_id, update_profile
from app.utils.security import verify_password

router = APIRouter()


async def _load_user(db: AsyncSession, identity: UserIdentity) -> User:
    user = await get_user_by_id(db, identity.id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="用户不存在")
    return user


@router.post("/change-password")
async def change_own_password(
    data: ChangePasswordRequest,
    identity: UserIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    user = await _load_user(db, identity)
    if not verify_password(data.old_password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="原密码不正确")
    await change_password(db, user, data.new_password)
    return {"success": True, "message": "密码修改成功"}


@router.post("/update")
async def update_own_profile(
    data: ProfileUpdateRequest,
    identity: UserIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    更新个人资料
    手机号与积分加密保存；返回更新后的身份与新的访问令牌
    """
    if not data.model_dump(exclude_unset=True, exclude_none=True):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="没有需要更新的字段")

    user = await _load_user(db, identity)
    user = await update_profile(db, user, data)
    fresh = build_identity(user)
    return {
        "success": True,
        "message": "个人资料已更新",
        "user": fresh.model_dump(by_alias=True),
        "accessToken": issue_access_token(fresh),
    }
