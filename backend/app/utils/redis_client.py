"""
Redis 客户端封装
限流与健康检查共用一个连接，事件循环切换时自动重建
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis 连接单例"""

    _instance: Optional["RedisClient"] = None
    _client: Optional[redis.Redis] = None
    _initialized: bool = False
    _loop: Optional[asyncio.AbstractEventLoop] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._client = None
            cls._instance._initialized = False
        return cls._instance

    async def initialize(self) -> None:
        """初始化 Redis 连接"""
        if self._initialized and self._client:
            return

        self._loop = asyncio.get_running_loop()
        self._client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB_CACHE,
            decode_responses=True,
            socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            logger.error(f"Redis客户端初始化失败: {e}")
            self._client = None
            raise
        self._initialized = True
        logger.info("Redis客户端初始化成功")

    async def get_client(self) -> redis.Redis:
        """获取 Redis 客户端实例"""
        loop = asyncio.get_running_loop()
        if self._loop is not None and (self._loop.is_closed() or loop is not self._loop):
            # 旧循环上的连接不可复用
            self._client = None
            self._initialized = False
            self._loop = None
        if not self._initialized or self._client is None:
            await self.initialize()
        if self._client is None:
            raise RuntimeError("Redis客户端初始化失败")
        return self._client

    async def ping(self) -> bool:
        try:
            client = await self.get_client()
            pong = await client.ping()
        except (RedisError, OSError, RuntimeError):
            return False
        return pong is True or pong == "PONG"

    async def increment(self, key: str, amount: int = 1) -> Optional[int]:
        """递增计数器，Redis 不可用时返回 None"""
        try:
            client = await self.get_client()
            return await client.incrby(key, amount)
        except (RedisError, OSError, RuntimeError) as e:
            logger.warning(f"Redis递增失败: {e}")
            return None

    async def close(self) -> None:
        """关闭 Redis 连接"""
        if self._client:
            try:
                await self._client.aclose()
            except (RedisError, OSError) as e:
                logger.warning(f"Redis关闭连接时出错: {e}")
            finally:
                self._client = None
                self._initialized = False
                logger.info("Redis客户端已关闭")


redis_client: RedisClient = RedisClient()
