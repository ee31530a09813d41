"""Redis 连接配置 - 共享配额计数器使用"""

from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis

# Redis 连接池
_redis_pool: Optional[Redis] = None


def get_redis(url: str) -> Redis:
    """获取 Redis 连接（首次调用时创建连接池，不会立即建立连接）"""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """关闭 Redis 连接"""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
