"""
认证服务
会话签发与基于刷新令牌 Cookie 的会话续期
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Mapping, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from app.core.cookies import clear_refresh_cookie, set_refresh_cookie
from app.core.roles import REFRESH_ORDER, Role, cookie_name_for, refresh_ttl_for, secret_for, to_role
from app.core.tokens import issue_access_token, issue_token, verify_token
from app.schemas.core.auth import UserIdentity
from app.services.users import build_identity, get_user_by_id


@dataclass
class IssuedSession:
    """一次签发的访问令牌 + 刷新令牌"""
    identity: UserIdentity
    role: Role
    access_token: str
    refresh_token: str


@dataclass
class RefreshOutcome:
    """会话续期结果；失败时 session 为 None"""
    session: Optional[IssuedSession] = None
    cookies_to_clear: List[Role] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.session is not None

    def apply_cookies(self, response: Response) -> None:
        """把续期结果写入响应的 Set-Cookie"""
        keep = self.session.role if self.session is not None else None
        for role in self.cookies_to_clear:
            if role != keep:
                clear_refresh_cookie(response, role)
        if self.session is not None:
            set_refresh_cookie(response, self.session.role, self.session.refresh_token)


def issue_session(identity: UserIdentity, now: Optional[datetime] = None) -> IssuedSession:
    """按身份当前角色签发新的访问令牌与刷新令牌"""
    role = to_role(identity.role)
    return IssuedSession(
        identity=identity,
        role=role,
        access_token=issue_access_token(identity, now=now),
        refresh_token=issue_token(identity, secret_for(role), refresh_ttl_for(role), now=now),
    )


class SessionRefresher:
    """
    依次尝试超级管理员、管理员、普通用户的刷新 Cookie，第一个成功者胜出

    每次成功都会从数据库重新读取用户，身份绝不取自旧令牌的载荷。
    """

    def __init__(self, db: AsyncSession, now: Optional[datetime] = None):
        self.db = db
        self.now = now

    async def refresh(self, cookies: Mapping[str, str]) -> RefreshOutcome:
        outcome = RefreshOutcome()
        for role in REFRESH_ORDER:
            token = cookies.get(cookie_name_for(role))
            if not token:
                continue

            claims = verify_token(token, secret_for(role))
            if claims is None:
                outcome.cookies_to_clear.append(role)
                continue

            try:
                user = await get_user_by_id(self.db, claims.id)
            except SQLAlchemyError as e:
                logger.error(f"刷新会话时读取用户失败 (role={int(role)}): {e}")
                await self.db.rollback()
                continue

            if user is None:
                outcome.cookies_to_clear.append(role)
                continue

            session = issue_session(build_identity(user), now=self.now)
            if session.role != role:
                # 角色已变更，旧层级的 Cookie 作废
                outcome.cookies_to_clear.append(role)
            outcome.session = session
            return outcome

        return outcome
