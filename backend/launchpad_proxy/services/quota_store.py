"""配额计数存储 - 内存实现（单实例）与 Redis 实现（多实例共享）"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Protocol, Tuple

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
    """一次配额检查的结果"""
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # 距窗口重置的秒数

    @property
    def reset_seconds(self) -> int:
        """向上取整的重置秒数，用于响应头"""
        return max(0, math.ceil(self.reset_after))


class QuotaStore(Protocol):
    """配额存储接口"""

    async def check_and_increment(self, key: str, window: float, limit: int) -> QuotaDecision:
        """
        检查 key 在当前窗口内是否还有余量，有则计数加一

        检查与递增必须对同一 key 的并发请求是原子的。
        被拒绝的请求不计数。
        """
        ...


class InMemoryQuotaStore:
    """基于内存的固定窗口计数器（进程重启后全部清零）"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        # key -> (请求次数, 窗口开始时间)
        self.windows: Dict[str, Tuple[int, float]] = {}
        # key -> 窗口长度，cleanup 时使用
        self.durations: Dict[str, float] = {}
        self.clock = clock
        self.lock = asyncio.Lock()

    async def check_and_increment(self, key: str, window: float, limit: int) -> QuotaDecision:
        async with self.lock:
            current_time = self.clock()
            count, start_time = self.windows.get(key, (0, current_time))

            # 窗口到期后从本次请求重新开始计数
            if current_time - start_time >= window:
                count, start_time = 0, current_time

            reset_after = window - (current_time - start_time)

            if count >= limit:
                return QuotaDecision(False, limit, 0, reset_after)

            count += 1
            self.windows[key] = (count, start_time)
            self.durations[key] = window
            return QuotaDecision(True, limit, limit - count, reset_after)

    async def cleanup(self) -> int:
        """清理已过期的窗口，返回清理数量"""
        async with self.lock:
            current_time = self.clock()
            expired = [
                key for key, (_, start_time) in self.windows.items()
                if current_time - start_time >= self.durations.get(key, 0)
            ]
            for key in expired:
                del self.windows[key]
                self.durations.pop(key, None)
            return len(expired)


# 读取、判断、递增、首次设置过期时间在同一个脚本中完成，保证原子性
_CHECK_AND_INCREMENT_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local limit = tonumber(ARGV[1])
if current >= limit then
    return {0, current, redis.call('PTTL', KEYS[1])}
end
current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[2])
end
return {1, current, redis.call('PTTL', KEYS[1])}
"""


class RedisQuotaStore:
    """基于 Redis 的固定窗口计数器，多个实例共享同一份配额"""

    def __init__(self, redis: Redis, prefix: str = "quota"):
        self.redis = redis
        self.prefix = prefix
        self._script = redis.register_script(_CHECK_AND_INCREMENT_SCRIPT)

    async def check_and_increment(self, key: str, window: float, limit: int) -> QuotaDecision:
        window_ms = max(1, int(window * 1000))
        allowed, count, ttl_ms = await self._script(
            keys=[f"{self.prefix}:{key}"],
            args=[limit, window_ms],
        )
        count = int(count)
        ttl_ms = int(ttl_ms)
        # PTTL 为负表示没有过期时间，按整个窗口计算
        reset_after = ttl_ms / 1000 if ttl_ms >= 0 else float(window)
        return QuotaDecision(
            allowed=bool(int(allowed)),
            limit=limit,
            remaining=max(0, limit - count),
            reset_after=reset_after,
        )


async def cleanup_task(store: InMemoryQuotaStore, interval: float = 300):
    """定期清理过期数据"""
    while True:
        await asyncio.sleep(interval)
        removed = await store.cleanup()
        if removed:
            logger.debug(f"Removed {removed} expired quota windows")
