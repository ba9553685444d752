"""
AI API 密钥管理端点（仅超级管理员）
列表只显示末 4 位；修改后使密钥缓存失效
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import get_db, require_super_admin
from app.models import AIApiKey
from app.schemas.core.integrations import ApiKeyCreate, ApiKeyResponse, ApiKeyUpdate
from app.services.api_keys import ApiKeyManager, get_api_key_manager
from app.utils.field_crypto import encrypt_field, last4, try_decrypt_field

router = APIRouter(dependencies=[Depends(require_super_admin)])


def _to_response(row: AIApiKey) -> ApiKeyResponse:
    preview = last4(try_decrypt_field(row.api_key_encrypted))
    return ApiKeyResponse(
        id=row.id,
        service=row.service,
        key_preview=f"...{preview}" if preview else None,
        status=row.status,
        failure_count=row.failure_count,
        last_used_at=row.last_used_at,
        created_at=row.created_at,
    )


async def _get_or_404(db: AsyncSession, key_id: int) -> AIApiKey:
    row = await db.get(AIApiKey, key_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API 密钥不存在")
    return row


@router.get("")
async def list_api_keys(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    result = await db.execute(select(AIApiKey).order_by(AIApiKey.id.asc()))
    return {"success": True, "keys": [_to_response(row) for row in result.scalars().all()]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_api_key(
    data: ApiKeyCreate,
    db: AsyncSession = Depends(get_db),
    manager: ApiKeyManager = Depends(get_api_key_manager),
) -> Dict[str, Any]:
    row = AIApiKey(service=data.service, api_key_encrypted=encrypt_field(data.key))
    try:
        db.add(row)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(row)
    manager.cache.invalidate()
    return {"success": True, "message": "API 密钥已添加", "key": _to_response(row)}


@router.get("/{key_id}")
async def get_api_key(key_id: int, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """返回完整密钥（用于管理员核对）"""
    row = await _get_or_404(db, key_id)
    plain = try_decrypt_field(row.api_key_encrypted)
    if plain is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="密钥无法解密")
    return {"success": True, "key": plain}


@router.put("/{key_id}")
async def update_api_key(
    key_id: int,
    data: ApiKeyUpdate,
    db: AsyncSession = Depends(get_db),
    manager: ApiKeyManager = Depends(get_api_key_manager),
) -> Dict[str, Any]:
    row = await _get_or_404(db, key_id)
    try:
        row.api_key_encrypted = encrypt_field(data.key.strip())  # type: ignore[assignment]
        row.failure_count = 0  # type: ignore[assignment]
        row.status = "active"  # type: ignore[assignment]
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    manager.cache.invalidate()
    return {"success": True, "message": "API 密钥已更新"}


@router.delete("/{key_id}")
async def delete_api_key(
    key_id: int,
    db: AsyncSession = Depends(get_db),
    manager: ApiKeyManager = Depends(get_api_key_manager),
) -> Dict[str, Any]:
    row = await _get_or_404(db, key_id)
    try:
        await db.delete(row)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    manager.cache.invalidate()
    return {"success": True, "message": "API 密钥已删除"}


@router.post("/{key_id}/reset")
async def reset_api_key_failures(
    key_id: int,
    manager: ApiKeyManager = Depends(get_api_key_manager),
) -> Dict[str, Any]:
    """清零失败次数并重新启用"""
    if not await manager.reset_failures(key_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API 密钥不存在")
    return {"success": True, "message": f"API 密钥 {key_id} 的失败次数已清零"}
