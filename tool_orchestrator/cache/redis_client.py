"""
Redis 客户端：连接池 + Key 统一管理
"""

import redis.asyncio as aioredis

from tool_orchestrator.config import Settings


class RedisKeys:
    """
    Redis Key 统一管理，避免散弹式硬编码
    命名规范：{业务域}:{资源类型}:{标识}
    """

    # ── AI 执行结果缓存 ──
    @staticmethod
    def execution_cache(cache_key: str) -> str:
        """Prompt 执行结果缓存 (TTL = AI_CACHE_TTL)"""
        return f"ai:exec:{cache_key}"

    @staticmethod
    def execution_cache_pattern() -> str:
        """清空 / 统计执行缓存时使用的匹配模式"""
        return "ai:exec:*"


def create_redis_client(settings: Settings) -> aioredis.Redis:
    """按配置创建带连接池的 Redis 客户端（由宿主进程持有并注入）"""
    pool = aioredis.ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
    )
    return aioredis.Redis(connection_pool=pool)
