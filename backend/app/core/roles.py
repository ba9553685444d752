"""
角色注册表
角色与刷新令牌密钥、有效期、Cookie 名称、首页路径的一一对应关系
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum
from typing import Dict, Tuple, Union

from app.core.config import settings


class Role(IntEnum):
    SUPER_ADMIN = 1
    ADMIN = 2
    USER = 3


@dataclass(frozen=True)
class RolePolicy:
    refresh_secret: str
    refresh_ttl: timedelta
    cookie_name: str
    home_path: str


# 刷新时按权限从高到低依次尝试
REFRESH_ORDER: Tuple[Role, ...] = (Role.SUPER_ADMIN, Role.ADMIN, Role.USER)


def _build_policies() -> Dict[Role, RolePolicy]:
    staff_ttl = timedelta(hours=settings.STAFF_REFRESH_TOKEN_EXPIRE_HOURS)
    return {
        Role.SUPER_ADMIN: RolePolicy(
            refresh_secret=settings.REFRESH_TOKEN_SECRET_SUPERADMIN,
            refresh_ttl=staff_ttl,
            cookie_name="superAdminRefreshToken",
            home_path="/superadmin",
        ),
        Role.ADMIN: RolePolicy(
            refresh_secret=settings.REFRESH_TOKEN_SECRET_ADMIN,
            refresh_ttl=staff_ttl,
            cookie_name="adminRefreshToken",
            home_path="/admin",
        ),
        Role.USER: RolePolicy(
            refresh_secret=settings.REFRESH_TOKEN_SECRET_USER,
            refresh_ttl=timedelta(days=settings.USER_REFRESH_TOKEN_EXPIRE_DAYS),
            cookie_name="refreshToken",
            home_path="/",
        ),
    }


ROLE_POLICIES: Dict[Role, RolePolicy] = _build_policies()


def to_role(value: Union[int, Role, None]) -> Role:
    """把任意角色值归一化；1、2 以外的值一律视为普通用户"""
    try:
        return Role(int(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return Role.USER


def policy_for(role: Union[int, Role, None]) -> RolePolicy:
    return ROLE_POLICIES[to_role(role)]


def secret_for(role: Union[int, Role, None]) -> str:
    return policy_for(role).refresh_secret


def cookie_name_for(role: Union[int, Role, None]) -> str:
    return policy_for(role).cookie_name


def refresh_ttl_for(role: Union[int, Role, None]) -> timedelta:
    return policy_for(role).refresh_ttl


def home_path_for(role: Union[int, Role, None]) -> str:
    return policy_for(role).home_path
