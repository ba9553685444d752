"""
Maudigi 后端应用主入口
FastAPI 应用配置和启动
"""

import sys
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from loguru import logger
from sqlalchemy import select
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.api import api_router
from app.api.endpoints.system.health import router as health_router
from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.roles import Role
from app.core.route_guard import RouteGuardMiddleware
from app.db.database import AsyncSessionLocal, close_db, init_db
from app.models import User
from app.services.ai_client import HttpClientManager
from app.utils.redis_client import redis_client
from app.utils.security import generate_referral_code, hash_super_admin_password

logger.remove()
logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理
    - 启动时：按需创建表，创建超级管理员
    - 关闭时：关闭 HTTP 客户端、Redis 与数据库连接
    """
    logger.info("应用启动中...")

    if settings.AUTO_CREATE_TABLES:
        logger.info("创建数据库表（仅开发环境/首次部署可选，生产请使用 Alembic 迁移）...")
        await init_db()

    await create_super_admin()

    logger.info("应用启动完成")
    yield
    logger.info("应用关闭中...")

    await HttpClientManager.close()
    await redis_client.close()
    await close_db()
    logger.info("应用已关闭")


async def create_super_admin():
    """
    创建或更新超级管理员账户
    从环境变量读取配置；SUPER_ADMIN_PASSWORD 为空时跳过
    """
    admin_email = (settings.SUPER_ADMIN_EMAIL or "").strip().lower()
    if not admin_email or not settings.SUPER_ADMIN_PASSWORD:
        logger.warning("超级管理员配置不完整，跳过创建")
        return

    hashed_password = hash_super_admin_password()
    async with AsyncSessionLocal() as session:
        try:
            result = await session.execute(select(User).where(User.email == admin_email))
            existing_admin = result.scalar_one_or_none()

            if existing_admin:
                existing_admin.hashed_password = hashed_password  # type: ignore[assignment]
                existing_admin.role_id = int(Role.SUPER_ADMIN)  # type: ignore[assignment]
                logger.info(f"超级管理员账户已更新: {admin_email}")
            else:
                session.add(
                    User(
                        email=admin_email,
                        name=settings.SUPER_ADMIN_NAME or "Super Admin",
                        hashed_password=hashed_password,
                        role_id=int(Role.SUPER_ADMIN),
                        referral_code=generate_referral_code(),
                    )
                )
                logger.info(f"超级管理员账户已创建: {admin_email}")
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("创建超级管理员失败")


# 创建 FastAPI 应用实例
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Maudigi 后端 API 服务",
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("Permissions-Policy", "camera=(), microphone=(), geolocation=()")
        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = rid
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response


# 配置 CORS
if settings.DEBUG:
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^http://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
elif settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(RouteGuardMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIdMiddleware)

register_exception_handlers(app)

# 注册 API 路由
app.include_router(api_router, prefix=settings.API_PREFIX)
app.include_router(health_router, tags=["health"])

# 前端构建产物（可选），挂载在所有路由之后
if settings.FRONTEND_DIST_DIR and Path(settings.FRONTEND_DIST_DIR).is_dir():
    app.mount("/", StaticFiles(directory=settings.FRONTEND_DIST_DIR, html=True), name="frontend")
else:

    @app.get("/")
    async def root():
        """根路径，返回应用信息"""
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs" if settings.DEBUG else None,
            "health": "/health",
        }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.BACKEND_RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
