"""
健康检查端点
挂载在根路径，不经过 API 前缀
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.database import get_db
from app.utils.redis_client import redis_client

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """
    健康检查接口
    数据库不可用为 unhealthy，仅 Redis 不可用为 degraded（限流退回内存）
    """
    try:
        result = await db.execute(text("SELECT 1"))
        db_status = "healthy" if result.scalar() == 1 else "unhealthy"
    except SQLAlchemyError:
        db_status = "unhealthy"

    redis_status = "healthy" if await redis_client.ping() else "unhealthy"

    if db_status != "healthy":
        overall_status = "unhealthy"
    elif redis_status != "healthy":
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return {
        "status": overall_status,
        "checks": {"database": db_status, "redis": redis_status},
        "system": {
            "service": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "timestamp": datetime.now().isoformat(),
            "environment": settings.DEPLOYMENT_ENV,
            "debug_mode": settings.DEBUG,
        },
    }


@router.get("/ping")
async def ping() -> Dict[str, str]:
    """简单的 ping 接口，用于测试"""
    return {"message": "pong"}
