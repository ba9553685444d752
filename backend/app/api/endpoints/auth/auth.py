"""
认证 API 端点
注册、登录、登出、会话续期、忘记/重置密码、当前用户
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.cookies import clear_all_refresh_cookies, clear_refresh_cookie, set_refresh_cookie
from app.core.deps import get_current_user, get_db
from app.core.errors import error_response
from app.core.roles import REFRESH_ORDER
from app.models import User
from app.schemas.core.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserIdentity,
)
from app.services.auth import SessionRefresher, issue_session
from app.services.email import EmailManager, get_email_manager
from app.services.password_reset import (
    FORGOT_PASSWORD_MESSAGE,
    PasswordResetError,
    request_password_reset,
    reset_password,
)
from app.services.users import (
    EmailAlreadyRegistered,
    authenticate_user,
    build_identity,
    register_user,
)
from app.utils.rate_limit import limit_by_ip

router = APIRouter()


def _user_payload(identity: UserIdentity) -> Dict[str, Any]:
    return identity.model_dump(by_alias=True)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """注册普通用户"""
    try:
        user = await register_user(db, data)
    except EmailAlreadyRegistered:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="该邮箱已被注册")
    return {"success": True, "message": "注册成功", "user": _user_payload(build_identity(user))}


@router.post("/login", dependencies=[Depends(limit_by_ip("login"))])
async def login(
    data: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    邮箱 + 密码登录
    返回访问令牌，并把刷新令牌写入当前角色对应的 Cookie
    """
    user = await authenticate_user(db, str(data.email), data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="邮箱或密码错误",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session = issue_session(build_identity(user))
    for role in REFRESH_ORDER:
        if role != session.role:
            clear_refresh_cookie(response, role)
    set_refresh_cookie(response, session.role, session.refresh_token)
    logger.info(f"用户登录成功: id={user.id}, role={int(session.role)}")
    return {
        "success": True,
        "accessToken": session.access_token,
        "user": _user_payload(session.identity),
    }


@router.post("/logout")
async def logout(
    response: Response,
) -> Dict[str, Any]:
    """登出：无条件清除所有角色的刷新 Cookie，请求体（如有）一律忽略"""
    clear_all_refresh_cookies(response)
    return {"success": True, "message": "已退出登录"}


@router.post("/refresh")
async def refresh(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """使用刷新令牌 Cookie 续期会话"""
    outcome = await SessionRefresher(db).refresh(request.cookies)
    if not outcome.success:
        failed = error_response(status.HTTP_401_UNAUTHORIZED, "会话已失效，请重新登录")
        outcome.apply_cookies(failed)
        return failed

    session = outcome.session
    ok = JSONResponse(
        content={
            "success": True,
            "accessToken": session.access_token,
            "user": _user_payload(session.identity),
        }
    )
    outcome.apply_cookies(ok)
    return ok


@router.post("/forgot-password", dependencies=[Depends(limit_by_ip("forgot-password"))])
async def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    email_manager: EmailManager = Depends(get_email_manager),
) -> Dict[str, Any]:
    """申请重置密码，无论邮箱是否注册都返回相同结果"""
    base_url = settings.FRONTEND_BASE_URL or str(request.base_url)
    await request_password_reset(db, str(data.email), base_url, email_manager)
    return {"success": True, "message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password")
async def confirm_reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """使用邮件中的令牌设置新密码"""
    try:
        await reset_password(db, data.token, data.password)
    except PasswordResetError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return {"success": True, "message": "密码已重置，请使用新密码登录"}


@router.get("/me")
async def read_current_user(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    """当前用户信息，始终从数据库重新读取"""
    return {"success": True, "user": _user_payload(build_identity(user))}
