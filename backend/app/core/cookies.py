"""
刷新令牌 Cookie 的设置与清除
"""

from typing import Union

from starlette.responses import Response

from app.core.config import settings
from app.core.roles import REFRESH_ORDER, Role, cookie_name_for, refresh_ttl_for

COOKIE_SAMESITE = "strict"
COOKIE_PATH = "/"


def set_refresh_cookie(response: Response, role: Union[int, Role], token: str) -> None:
    """按角色写入刷新令牌 Cookie，有效期与该角色刷新令牌一致"""
    response.set_cookie(
        key=cookie_name_for(role),
        value=token,
        max_age=int(refresh_ttl_for(role).total_seconds()),
        httponly=True,
        secure=settings.cookie_secure,
        samesite=COOKIE_SAMESITE,
        domain=settings.COOKIE_DOMAIN,
        path=COOKIE_PATH,
    )


def clear_refresh_cookie(response: Response, role: Union[int, Role]) -> None:
    """以相同的名称和属性下发过期 Cookie"""
    response.delete_cookie(
        key=cookie_name_for(role),
        path=COOKIE_PATH,
        domain=settings.COOKIE_DOMAIN,
        secure=settings.cookie_secure,
        httponly=True,
        samesite=COOKIE_SAMESITE,
    )


def clear_all_refresh_cookies(response: Response) -> None:
    for role in REFRESH_ORDER:
        clear_refresh_cookie(response, role)
