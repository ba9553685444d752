"""
密码重置服务
申请：生成一次性令牌（库中只存摘要）并发送重置邮件
确认：校验令牌、更新密码并作废该用户所有重置令牌
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models import PasswordReset
from app.services.email import EmailDeliveryError, EmailManager
from app.services.users import get_user_by_email, get_user_by_id
from app.utils.security import generate_reset_token, get_password_hash, hash_token

RESET_PATH = "/account/reset-password"
FORGOT_PASSWORD_MESSAGE = "如果该邮箱已注册，重置链接将发送到您的邮箱"


class PasswordResetError(Exception):
    """令牌无效或已过期"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _utc(value: datetime) -> datetime:
    # SQLite 读回的时间不带时区
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_reset_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}{RESET_PATH}?token={token}"


def _reset_email_html(link: str) -> str:
    minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES
    return (
        "<p>您收到这封邮件，是因为有人请求重置您账户的密码。</p>"
        "<p>点击下面的链接设置新密码：</p>"
        f'<p><a href="{link}">重置密码</a></p>'
        f"<p>链接将在 {minutes} 分钟后失效。如果这不是您本人的操作，请忽略本邮件。</p>"
    )


async def create_reset_token(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> str:
    """
    为用户生成新的重置令牌并返回明文

    同一事务内删除该用户之前的所有重置记录，保证最多只有一个有效令牌。
    """
    current = now or datetime.now(timezone.utc)
    token = generate_reset_token()
    try:
        await db.execute(delete(PasswordReset).where(PasswordReset.user_id == user_id))
        db.add(
            PasswordReset(
                user_id=user_id,
                token_hash=hash_token(token),
                expires_at=current + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return token


async def request_password_reset(
    db: AsyncSession,
    email: str,
    base_url: str,
    email_manager: EmailManager,
    now: Optional[datetime] = None,
) -> None:
    """
    处理忘记密码请求

    无论邮箱是否存在、存储或邮件是否失败，调用方都返回相同的成功响应；
    失败只记录日志。
    """
    try:
        user = await get_user_by_email(db, email)
        if user is None:
            logger.info("忘记密码请求: 邮箱未注册")
            return
        token = await create_reset_token(db, user.id, now=now)
    except SQLAlchemyError as e:
        logger.error(f"生成密码重置令牌失败: {e}")
        return

    link = build_reset_link(base_url, token)
    try:
        await email_manager.send_email(user.email, "重置您的密码", _reset_email_html(link))
    except EmailDeliveryError as e:
        logger.error(f"密码重置邮件发送失败 (user_id={user.id}): {e}")


async def reset_password(
    db: AsyncSession,
    token: str,
    new_password: str,
    now: Optional[datetime] = None,
) -> None:
    """
    使用重置令牌设置新密码

    Raises:
        PasswordResetError: 令牌不存在或已过期
    """
    current = now or datetime.now(timezone.utc)
    result = await db.execute(select(PasswordReset).where(PasswordReset.token_hash == hash_token(token)))
    record = result.scalar_one_or_none()
    if record is None:
        raise PasswordResetError("令牌无效或已被使用")

    if current > _utc(record.expires_at):
        try:
            await db.delete(record)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        raise PasswordResetError("令牌已过期")

    try:
        user = await get_user_by_id(db, record.user_id)
        if user is None:
            raise PasswordResetError("令牌无效或已被使用")
        user.hashed_password = get_password_hash(new_password)  # type: ignore[assignment]
        await db.execute(delete(PasswordReset).where(PasswordReset.user_id == record.user_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(f"用户密码已通过重置令牌更新 (user_id={record.user_id})")
