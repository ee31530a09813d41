"""配额控制 - 全局 IP 限流与免费用户配额"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from launchpad_proxy.core.errors import QuotaExceeded
from launchpad_proxy.models.user import Identity, SubscriptionTier
from launchpad_proxy.services.quota_store import QuotaDecision, QuotaStore

logger = logging.getLogger(__name__)

GENERAL_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."
FREE_TIER_LIMIT_MESSAGE = "Free tier quota exceeded. Please upgrade to Pro for unlimited usage."


@dataclass(frozen=True)
class QuotaWindow:
    """限流窗口：名称、窗口长度（秒）、最大次数、超限提示"""
    name: str
    duration: float
    max_count: int
    message: str

    def key_for(self, subject: str) -> str:
        return f"{self.name}:{subject}"


def rate_limit_headers(decision: QuotaDecision) -> Dict[str, str]:
    """标准 RateLimit-* 响应头"""
    headers = {
        "RateLimit-Limit": str(decision.limit),
        "RateLimit-Remaining": str(decision.remaining),
        "RateLimit-Reset": str(decision.reset_seconds),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.reset_seconds)
    return headers


class QuotaEnforcer:
    """
    配额控制器

    两个相互独立的限流器：
    - general：按客户端 IP，对所有已认证请求生效
    - free_tier：按用户 ID，仅对非 pro 用户生效
    """

    def __init__(self, store: QuotaStore, general: QuotaWindow, free_tier: QuotaWindow):
        self.store = store
        self.general = general
        self.free_tier = free_tier

    async def _check(self, window: QuotaWindow, subject: str) -> QuotaDecision:
        decision = await self.store.check_and_increment(
            window.key_for(subject),
            window.duration,
            window.max_count,
        )
        if not decision.allowed:
            logger.info(f"Quota '{window.name}' exceeded for {subject}")
            raise QuotaExceeded(window.message, headers=rate_limit_headers(decision))
        return decision

    async def check_general(self, client_ip: str) -> QuotaDecision:
        """
        检查全局 IP 限流

        Raises:
            QuotaExceeded: 超过每小时请求上限
        """
        return await self._check(self.general, client_ip)

    async def check_tier(self, identity: Identity, tier: SubscriptionTier) -> Optional[QuotaDecision]:
        """
        检查免费用户配额；pro 用户不受限，返回 None

        Raises:
            QuotaExceeded: 免费用户超过周期配额
        """
        if tier == SubscriptionTier.PRO:
            return None
        return await self._check(self.free_tier, identity.id)
