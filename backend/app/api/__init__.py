"""
API 路由注册
"""

from fastapi import APIRouter

from app.api.endpoints.auth import router as auth_router
from app.api.endpoints.superadmin import router as superadmin_router
from app.api.endpoints.user import router as user_router

api_router = APIRouter()

# 注册各个模块的路由
api_router.include_router(auth_router, tags=["authentication"], prefix="/auth")
api_router.include_router(user_router, tags=["user"], prefix="/user")
api_router.include_router(superadmin_router, tags=["superadmin"], prefix="/superadmin")
