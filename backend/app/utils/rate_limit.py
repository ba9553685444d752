"""
简单限流
同一键在间隔内只允许一次请求；优先使用 Redis，不可用时退回进程内计时
"""

import asyncio
import time
from typing import Callable, Dict, Optional

from fastapi import HTTPException, Request, status
from redis.exceptions import RedisError

from app.core.config import settings
from app.utils.redis_client import redis_client

TOO_MANY_REQUESTS = "请求过于频繁，请稍后再试"


class InMemoryRateLimiter:
    def __init__(self, timer: Callable[[], float] = time.monotonic) -> None:
        self._lock = asyncio.Lock()
        self._until: Dict[str, float] = {}
        self._timer = timer

    async def check(self, key: str, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            return
        now = self._timer()
        async with self._lock:
            self._prune(now)
            if key in self._until:
                raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=TOO_MANY_REQUESTS)
            self._until[key] = now + interval_seconds

    def _prune(self, now: float) -> None:
        expired = [k for k, until in self._until.items() if until <= now]
        for k in expired:
            del self._until[k]

    def __len__(self) -> int:
        return len(self._until)


class RedisRateLimiter:
    async def check(self, key: str, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            return
        ms = max(1, int(interval_seconds * 1000))
        client = await redis_client.get_client()
        ok = await client.set(f"rl:{key}", "1", nx=True, px=ms)
        if ok:
            return
        await redis_client.increment("http:429")
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=TOO_MANY_REQUESTS)


class RateLimiter:
    def __init__(self) -> None:
        self._mem = InMemoryRateLimiter()
        self._redis = RedisRateLimiter()

    async def check(self, key: str, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            return
        try:
            await self._redis.check(key, interval_seconds)
        except (RedisError, OSError, RuntimeError):
            await self._mem.check(key, interval_seconds)


rate_limiter = RateLimiter()


def client_ip(request: Request, trust_proxy: Optional[bool] = None) -> str:
    """客户端 IP；仅在部署于受信任反向代理之后时才采信 X-Forwarded-For"""
    if trust_proxy is None:
        trust_proxy = settings.TRUST_PROXY_HEADERS
    forwarded = request.headers.get("x-forwarded-for") if trust_proxy else None
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def limit_by_ip(scope: str):
    """按客户端 IP 限流的依赖工厂"""

    async def dependency(request: Request) -> None:
        await rate_limiter.check(f"{scope}:{client_ip(request)}", settings.AUTH_RATE_LIMIT_SECONDS)

    return dependency
