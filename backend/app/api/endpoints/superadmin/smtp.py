"""
SMTP 配置管理端点（仅超级管理员）
返回内容从不包含密码；任何修改都会使发件配置缓存失效
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import get_db, require_super_admin
from app.models import SmtpConfiguration
from app.schemas.core.integrations import SmtpConfigCreate, SmtpConfigResponse
from app.services.email import EmailManager, get_email_manager
from app.utils.field_crypto import encrypt_field

router = APIRouter(dependencies=[Depends(require_super_admin)])


@router.get("")
async def list_smtp_configs(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    result = await db.execute(
        select(SmtpConfiguration).order_by(
            SmtpConfiguration.last_used_at.desc().nullslast(), SmtpConfiguration.id.desc()
        )
    )
    configs = [SmtpConfigResponse.model_validate(row) for row in result.scalars().all()]
    return {"success": True, "configs": configs}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_smtp_config(
    data: SmtpConfigCreate,
    db: AsyncSession = Depends(get_db),
    email_manager: EmailManager = Depends(get_email_manager),
) -> Dict[str, Any]:
    config = SmtpConfiguration(
        host=data.host.strip(),
        port=data.port,
        secure=data.secure,
        user=data.user.strip(),
        password_encrypted=encrypt_field(data.password),
    )
    try:
        db.add(config)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(config)
    email_manager.cache.invalidate()
    return {"success": True, "message": "SMTP 配置已添加", "configId": config.id}


@router.delete("")
async def delete_smtp_config(
    id: int = Query(..., description="SMTP 配置ID"),
    db: AsyncSession = Depends(get_db),
    email_manager: EmailManager = Depends(get_email_manager),
) -> Dict[str, Any]:
    config = await db.get(SmtpConfiguration, id)
    if config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="SMTP 配置不存在")
    try:
        await db.delete(config)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    email_manager.cache.invalidate()
    return {"success": True, "message": "SMTP 配置已删除"}
