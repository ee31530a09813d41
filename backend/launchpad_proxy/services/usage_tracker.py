"""API 调用记录服务"""

import json
import logging
from typing import Any, Dict, List, Protocol

from launchpad_proxy.models.usage import UsageLogEntry
from launchpad_proxy.models.user import Identity, SubscriptionTier

logger = logging.getLogger(__name__)


class LogStore(Protocol):
    """外部只追加日志存储"""

    async def append(self, entry: UsageLogEntry) -> None:
        ...


def measure_request_size(messages: List[Dict[str, Any]]) -> int:
    """messages 紧凑 JSON 编码（UTF-8）后的字节数"""
    encoded = json.dumps(messages, separators=(",", ":"), ensure_ascii=False)
    return len(encoded.encode("utf-8"))


class UsageRecorder:
    """调用记录器 - 写入失败只记日志，不影响请求"""

    def __init__(self, store: LogStore):
        self.store = store

    async def record(
        self,
        identity: Identity,
        tier: SubscriptionTier,
        endpoint: str,
        messages: List[Dict[str, Any]],
    ) -> UsageLogEntry:
        """
        构造并写入一条调用日志

        Returns:
            UsageLogEntry: 已构造的记录（无论是否写入成功）
        """
        entry = UsageLogEntry(
            user_id=identity.id,
            endpoint=endpoint,
            request_size=measure_request_size(messages),
            subscription_tier=tier,
        )

        try:
            await self.store.append(entry)
        except Exception as e:
            logger.error(f"Failed to write usage log for {identity.id}: {e}")

        return entry
