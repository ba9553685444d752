"""
页面路由守卫中间件
根据刷新令牌 Cookie 判断登录状态与角色，对页面请求放行或重定向
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple
from urllib.parse import quote

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from app.core.cookies import clear_refresh_cookie
from app.core.roles import REFRESH_ORDER, Role, cookie_name_for, home_path_for, secret_for
from app.core.route_policy import DEFAULT_ROUTE_POLICY, RoutePolicy
from app.core.tokens import verify_token


@dataclass
class GuardDecision:
    redirect_to: Optional[str] = None
    cookies_to_clear: List[Role] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.redirect_to is None


def resolve_session_role(cookies: Mapping[str, str]) -> Tuple[Optional[Role], List[Role]]:
    """
    按刷新顺序检查各角色 Cookie，返回第一个有效 Cookie 的角色，
    以及存在但无效的 Cookie 角色列表
    """
    invalid: List[Role] = []
    for role in REFRESH_ORDER:
        token = cookies.get(cookie_name_for(role))
        if not token:
            continue
        if verify_token(token, secret_for(role)) is not None:
            return role, invalid
        invalid.append(role)
    return None, invalid


def login_redirect(policy: RoutePolicy, path: str) -> str:
    return f"{policy.login_path}?redirect={quote(path, safe='/')}"


def decide(path: str, cookies: Mapping[str, str], policy: RoutePolicy = DEFAULT_ROUTE_POLICY) -> GuardDecision:
    role, invalid = resolve_session_role(cookies)

    if role is None:
        decision = GuardDecision(cookies_to_clear=invalid)
        if not policy.is_public(path):
            decision.redirect_to = login_redirect(policy, path)
        return decision

    if policy.is_login_entry(path):
        return GuardDecision(redirect_to=home_path_for(role), cookies_to_clear=invalid)
    if not policy.allows(path, role):
        return GuardDecision(redirect_to="/", cookies_to_clear=invalid)
    return GuardDecision(cookies_to_clear=invalid)


class RouteGuardMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, policy: RoutePolicy = DEFAULT_ROUTE_POLICY):
        super().__init__(app)
        self.policy = policy

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if request.method not in ("GET", "HEAD") or not self.policy.is_navigable(path):
            return await call_next(request)

        decision = decide(path, request.cookies, self.policy)
        if decision.allowed:
            response: Response = await call_next(request)
        else:
            response = RedirectResponse(url=decision.redirect_to, status_code=307)
        for role in decision.cookies_to_clear:
            clear_refresh_cookie(response, role)
        return response
