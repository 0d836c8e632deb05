"""
可注入的执行结果缓存

- InMemoryCacheStore：进程内 dict，单事件循环下无需加锁；同 Key 并发写入时后写者胜出
- RedisCacheStore：redis.asyncio，原生 TTL 过期，适合多线程 / 多进程宿主

值统一为 CacheEntry(result, expiry)，expiry 为绝对过期时间（epoch 秒）。
"""

import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as aioredis
import structlog
from pydantic import BaseModel

from tool_orchestrator.cache.redis_client import RedisKeys, create_redis_client
from tool_orchestrator.config import Settings
from tool_orchestrator.llm.schemas import ExecutionResult

log = structlog.get_logger()

# 超过该条目数时触发过期清理
PRUNE_THRESHOLD = 100


class CacheEntry(BaseModel):
    result: ExecutionResult
    expiry: float  # 绝对过期时间（epoch 秒）

    def is_expired(self, now: float) -> bool:
        return now >= self.expiry


class CacheStore(Protocol):
    """执行器依赖的键值存储接口"""

    async def get(self, key: str) -> CacheEntry | None: ...

    async def set(self, key: str, entry: CacheEntry) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...

    async def size(self) -> int: ...

    async def prune_expired(self, now: float) -> int: ...


class InMemoryCacheStore:
    """进程内缓存"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock

    async def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    async def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry
        if len(self._entries) > PRUNE_THRESHOLD:
            await self.prune_expired(self._clock())

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    async def size(self) -> int:
        return len(self._entries)

    async def prune_expired(self, now: float) -> int:
        expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            log.debug("执行缓存清理过期条目", removed=len(expired), remaining=len(self._entries))
        return len(expired)


class RedisCacheStore:
    """Redis 缓存（过期由 Redis 原生 TTL 负责）"""

    def __init__(self, redis: aioredis.Redis, clock: Callable[[], float] = time.time):
        self._redis = redis
        self._clock = clock

    async def get(self, key: str) -> CacheEntry | None:
        raw = await self._redis.get(RedisKeys.execution_cache(key))
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValueError as e:
            # 脏数据直接删掉，按未命中处理
            log.warning("执行缓存反序列化失败，已删除", key=key, error=str(e))
            await self.delete(key)
            return None

    async def set(self, key: str, entry: CacheEntry) -> None:
        ttl = max(int(entry.expiry - self._clock()), 1)
        await self._redis.set(
            RedisKeys.execution_cache(key),
            entry.model_dump_json(),
            ex=ttl,
        )

    async def delete(self, key: str) -> None:
        await self._redis.delete(RedisKeys.execution_cache(key))

    async def clear(self) -> None:
        keys = [k async for k in self._redis.scan_iter(match=RedisKeys.execution_cache_pattern())]
        if keys:
            await self._redis.delete(*keys)

    async def size(self) -> int:
        count = 0
        async for _ in self._redis.scan_iter(match=RedisKeys.execution_cache_pattern()):
            count += 1
        return count

    async def prune_expired(self, now: float) -> int:
        # Redis TTL 自动过期，无需手动清理
        return 0


def create_cache_store(settings: Settings, clock: Callable[[], float] = time.time) -> CacheStore:
    """按 CACHE_BACKEND 选择缓存实现"""
    backend = settings.CACHE_BACKEND.strip().lower()
    if backend == "redis":
        log.info("执行缓存使用 Redis", url=settings.REDIS_URL)
        return RedisCacheStore(create_redis_client(settings), clock=clock)
    if backend != "memory":
        log.warning("未知的 CACHE_BACKEND，回退到内存缓存", backend=settings.CACHE_BACKEND)
    return InMemoryCacheStore(clock=clock)

