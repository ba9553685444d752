"""
页面路由访问策略
公开路径、登录入口路径、按角色限制的路径前缀，以及不经过守卫的路径
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from app.core.config import settings
from app.core.roles import Role


def _matches_prefix(path: str, prefix: str) -> bool:
    """prefix 本身或其子路径；/surat-generator 不匹配 /surat"""
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


@dataclass(frozen=True)
class RoutePolicy:
    public_exact: Tuple[str, ...] = ("/", "/account", "/login", "/admin/login", "/superadmin/login")
    public_prefixes: Tuple[str, ...] = (
        "/account/forgot-password",
        "/account/reset-password",
        "/explore",
        "/pricing",
        "/converter",
        "/calculator",
        "/color-generator",
        "/stopwatch",
        "/unit-converter",
        "/scanner",
        "/surat",
        "/blog",
        "/install",
    )
    login_entry_paths: Tuple[str, ...] = ("/account", "/login", "/admin/login", "/superadmin/login")
    # 按顺序匹配，先匹配到的生效
    restricted_prefixes: Tuple[Tuple[str, Role], ...] = (
        ("/superadmin", Role.SUPER_ADMIN),
        ("/admin", Role.ADMIN),
    )
    login_path: str = "/account"
    excluded_exact: Tuple[str, ...] = (
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
        "/ping",
        "/favicon.ico",
        "/manifest.json",
        "/sw.js",
    )
    excluded_prefixes: Tuple[str, ...] = field(
        default_factory=lambda: (
            settings.API_PREFIX,
            "/docs",
            "/_next/static",
            "/_next/image",
            "/static",
            "/sounds",
        )
    )
    excluded_name_prefixes: Tuple[str, ...] = ("/icon-", "/maskable_icon")
    asset_extensions: Tuple[str, ...] = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico")

    def is_navigable(self, path: str) -> bool:
        """是否需要经过路由守卫（排除 API、文档、静态资源）"""
        if path in self.excluded_exact:
            return False
        if any(_matches_prefix(path, p) for p in self.excluded_prefixes):
            return False
        if any(path.startswith(p) for p in self.excluded_name_prefixes):
            return False
        return not path.lower().endswith(self.asset_extensions)

    def is_public(self, path: str) -> bool:
        if path in self.public_exact:
            return True
        return any(_matches_prefix(path, p) for p in self.public_prefixes)

    def is_login_entry(self, path: str) -> bool:
        return path in self.login_entry_paths

    def required_role(self, path: str) -> Optional[Role]:
        """访问该路径所需的最低角色（数值越小权限越高）"""
        for prefix, role in self.restricted_prefixes:
            if _matches_prefix(path, prefix):
                return role
        return None

    def allows(self, path: str, role: Role) -> bool:
        required = self.required_role(path)
        return required is None or role <= required


DEFAULT_ROUTE_POLICY = RoutePolicy()
