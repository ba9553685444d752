"""
用户服务
用户查询、注册、资料更新，以及从数据库行构建 UserIdentity
"""

from typing import Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.roles import Role, to_role
from app.models import User
from app.schemas.core.auth import ProfileUpdateRequest, RegisterRequest, UserIdentity
from app.utils.field_crypto import encrypt_field, try_decrypt_field
from app.utils.security import generate_referral_code, get_password_hash, verify_password


class EmailAlreadyRegistered(Exception):
    """邮箱已被注册"""


def _decrypt_points(value: Optional[str]) -> Optional[int]:
    plain = try_decrypt_field(value)
    if plain is None:
        return None
    try:
        return int(plain)
    except ValueError:
        logger.warning("积分字段解密后不是整数，已忽略")
        return None


def build_identity(user: User) -> UserIdentity:
    """
    从数据库行构建身份（唯一入口）
    手机号、积分为密文存储，在此解密
    """
    return UserIdentity(
        id=user.id,
        name=user.name,
        email=user.email,
        role=int(to_role(user.role_id)),
        avatar=user.avatar_url,
        phone=try_decrypt_field(user.phone_number),
        points=_decrypt_points(user.points),
        referral_code=user.referral_code,
    )


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """邮箱 + 密码认证，失败统一返回 None（不区分用户不存在与密码错误）"""
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


async def _unique_referral_code(db: AsyncSession) -> str:
    while True:
        code = generate_referral_code()
        result = await db.execute(select(User.id).where(User.referral_code == code))
        if result.scalar_one_or_none() is None:
            return code


async def register_user(db: AsyncSession, data: RegisterRequest) -> User:
    """
    注册普通用户（角色 3），初始积分 0（加密存储）

    Raises:
        EmailAlreadyRegistered: 邮箱已存在
    """
    email = str(data.email).strip().lower()
    if await get_user_by_email(db, email):
        raise EmailAlreadyRegistered(email)

    user = User(
        name=data.name.strip(),
        email=email,
        hashed_password=get_password_hash(data.password),
        role_id=int(Role.USER),
        points=encrypt_field("0"),
        referral_code=await _unique_referral_code(db),
        browser_fingerprint=data.fingerprint,
    )
    try:
        db.add(user)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(user)
    logger.info(f"新用户注册: id={user.id}")
    return user


async def change_password(db: AsyncSession, user: User, new_password: str) -> None:
    try:
        user.hashed_password = get_password_hash(new_password)  # type: ignore[assignment]
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdateRequest) -> User:
    """更新个人资料，只写入请求中出现的字段"""
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes:
        user.name = changes["name"].strip()  # type: ignore[assignment]
    if "avatar_url" in changes:
        user.avatar_url = changes["avatar_url"]  # type: ignore[assignment]
    if "phone" in changes:
        user.phone_number = encrypt_field(changes["phone"])  # type: ignore[assignment]
    if "points" in changes:
        user.points = encrypt_field(str(changes["points"]))  # type: ignore[assignment]
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(user)
    return user
