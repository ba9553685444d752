"""
AI 服务 API 密钥管理
启用的密钥解密后缓存，轮询分配；调用失败的密钥立即移出缓存
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from cachetools import TTLCache
from cryptography.fernet import InvalidToken
from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.models import AIApiKey
from app.utils.field_crypto import decrypt_field


@dataclass(frozen=True)
class ApiKeyRecord:
    id: int
    key: str
    service: str


class ApiKeyCache:
    """已解密的启用密钥列表缓存"""

    _KEY = "active"

    def __init__(self, ttl: Optional[float] = None, timer: Callable[[], float] = time.monotonic):
        self._cache: TTLCache = TTLCache(
            maxsize=1,
            ttl=settings.API_KEY_CACHE_TTL_SECONDS if ttl is None else ttl,
            timer=timer,
        )

    def get(self) -> Optional[List[ApiKeyRecord]]:
        return self._cache.get(self._KEY)

    def put(self, keys: List[ApiKeyRecord]) -> None:
        self._cache[self._KEY] = keys

    def discard(self, key_id: int) -> None:
        keys = self.get()
        if keys is not None:
            self._cache[self._KEY] = [k for k in keys if k.id != key_id]

    def invalidate(self) -> None:
        self._cache.clear()


class ApiKeyManager:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[ApiKeyCache] = None,
        service: str = "gemini",
    ):
        self.session_factory = session_factory
        self.cache = cache or ApiKeyCache()
        self.service = service
        self._index = 0

    async def load_keys(self) -> List[ApiKeyRecord]:
        cached = self.cache.get()
        if cached is not None:
            return cached

        async with self.session_factory() as db:
            result = await db.execute(
                select(AIApiKey)
                .where(AIApiKey.status == "active", AIApiKey.service == self.service)
                .order_by(AIApiKey.last_used_at.asc().nullsfirst(), AIApiKey.id.asc())
            )
            rows = result.scalars().all()

        keys: List[ApiKeyRecord] = []
        for row in rows:
            try:
                keys.append(ApiKeyRecord(id=row.id, key=decrypt_field(row.api_key_encrypted), service=row.service))
            except (InvalidToken, RuntimeError):
                logger.error(f"API 密钥 {row.id} 无法解密，已跳过")
        self.cache.put(keys)
        self._index = 0
        logger.info(f"已加载 {len(keys)} 个启用的 API 密钥")
        return keys

    async def next_key(self) -> Optional[ApiKeyRecord]:
        """轮询返回下一个可用密钥，没有可用密钥时返回 None"""
        keys = await self.load_keys()
        if not keys:
            return None
        if self._index >= len(keys):
            self._index = 0
        record = keys[self._index]
        self._index = (self._index + 1) % len(keys)
        return record

    async def _update(self, key_id: int, **values) -> bool:
        async with self.session_factory() as db:
            try:
                result = await db.execute(update(AIApiKey).where(AIApiKey.id == key_id).values(**values))
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return result.rowcount > 0

    async def mark_used(self, key_id: int) -> None:
        try:
            await self._update(key_id, last_used_at=datetime.now(timezone.utc))
        except SQLAlchemyError as e:
            logger.error(f"更新 API 密钥 {key_id} 使用时间失败: {e}")

    async def report_failure(self, key_id: int) -> None:
        """失败计数加一，并立即从缓存中移除该密钥"""
        logger.warning(f"API 密钥 {key_id} 调用失败")
        self.cache.discard(key_id)
        try:
            await self._update(key_id, failure_count=AIApiKey.failure_count + 1)
        except SQLAlchemyError as e:
            logger.error(f"记录 API 密钥 {key_id} 失败次数失败: {e}")

    async def reset_failures(self, key_id: int) -> bool:
        """清零失败次数并重新启用，返回密钥是否存在"""
        found = await self._update(key_id, failure_count=0, status="active")
        self.cache.invalidate()
        return found


_api_key_manager: Optional[ApiKeyManager] = None


def get_api_key_manager() -> ApiKeyManager:
    global _api_key_manager
    if _api_key_manager is None:
        _api_key_manager = ApiKeyManager(AsyncSessionLocal)
    return _api_key_manager
